import builtins
import dataclasses
import stat
from abc import ABC, abstractmethod
from typing import IO


@dataclasses.dataclass
class FileInfo:
    # fmt: off
    name     : str
    size     : int
    mtime    : float
    mode     : int
    linkname : str = ""
    # fmt: on

    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)

    def is_file(self) -> bool:
        return stat.S_ISREG(self.mode)

    def is_symlink(self) -> bool:
        return stat.S_ISLNK(self.mode)


class MountSource(ABC):
    """
    Generic class representing a read-only file system. It offers the four operations needed by a file server:
    stat, lstat, list, and open, all of which take a path.

    All paths should have a leading '/'. If there is is no leading slash, behave as if there was one.
    Errors are reported by raising one of the ZipServeError subclasses from zipservecore.utils.
    """

    @abstractmethod
    def stat(self, path: str) -> FileInfo:
        """Returns metadata for the given path. Symbolic links are followed if the file system supports them."""

    def lstat(self, path: str) -> FileInfo:
        """Like stat but does not follow a symbolic link at the end of the path."""
        return self.stat(path)

    @abstractmethod
    def list(self, path: str) -> builtins.list[FileInfo]:
        """Returns the metadata for all entries of the given folder sorted by name."""

    @abstractmethod
    def open(self, path: str) -> IO[bytes]:
        """Returns a seekable, readable file object, which has to be closed by the caller."""

    def close(self) -> None:
        """Releases all resources held by this mount source. Should not be used anymore afterwards."""

    def __enter__(self):
        return self

    def __exit__(self, exception_type, exception_value, exception_traceback):
        self.close()


def create_directory_file_info(name: str) -> FileInfo:
    # fmt: off
    return FileInfo(
        name     = name,
        size     = 0,
        mtime    = 0,
        mode     = 0o555 | stat.S_IFDIR,
        linkname = "",
    )
    # fmt: on


def masquerade(fileInfo: FileInfo, isArchive: bool) -> FileInfo:
    """
    Returns the metadata to show for a file. Archives, which can be opened like folders, are reported
    as a folder with only the original name being kept. All other metadata is returned unchanged.
    """
    return create_directory_file_info(fileInfo.name) if isArchive else fileInfo
