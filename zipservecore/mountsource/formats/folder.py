import builtins
import errno
import os
import stat
from typing import IO, Union

from zipservecore.mountsource import FileInfo, MountSource
from zipservecore.utils import (
    ClosedError,
    IOFailureError,
    NotAFileError,
    NotFoundError,
    NotTraversableError,
    overrides,
    split_path,
)


def translate_os_error(exception: OSError, path: str) -> Exception:
    """Maps an error returned by the host file system to the matching ZipServeError subclass."""
    if isinstance(exception, FileNotFoundError) or exception.errno == errno.ENOENT:
        return NotFoundError(f"Path '{path}' does not exist!")
    if isinstance(exception, NotADirectoryError) or exception.errno == errno.ENOTDIR:
        return NotTraversableError(f"A parent of path '{path}' is not a folder!")
    if isinstance(exception, IsADirectoryError) or exception.errno == errno.EISDIR:
        return NotAFileError(f"Path '{path}' is a folder, not a file!")
    return IOFailureError(f"Failed to access '{path}' because of: {exception}")


class FolderMountSource(MountSource):
    """
    This class manages one folder on the host as mount source offering methods for listing folders,
    reading files, and others. Paths are always interpreted relative to the folder and can not leave it.
    """

    def __init__(self, path: Union[str, os.PathLike]) -> None:
        self.root = str(path)
        self.closed = False
        if not os.path.isdir(self.root):
            raise NotFoundError(f"Specified root '{self.root}' is not an existing folder!")

    def __repr__(self) -> str:
        return f"FolderMountSource({self.root!r})"

    def _realpath(self, path: str) -> str:
        """Path given relative to folder root. Leading '/' is acceptable"""
        if self.closed:
            raise ClosedError(f"{self} has already been closed!")
        return os.path.join(self.root, *split_path(path))

    @staticmethod
    def _stats_to_file_info(stats: os.stat_result, name: str, linkname: str):
        # fmt: off
        return FileInfo(
            name     = name,
            size     = stats.st_size,
            mtime    = stats.st_mtime,
            mode     = stats.st_mode,
            linkname = linkname,
        )
        # fmt: on

    @staticmethod
    def _name(path: str) -> str:
        parts = split_path(path)
        return parts[-1] if parts else '/'

    @overrides(MountSource)
    def stat(self, path: str) -> FileInfo:
        realpath = self._realpath(path)
        try:
            return self._stats_to_file_info(os.stat(realpath), self._name(path), "")
        except OSError as exception:
            raise translate_os_error(exception, path) from exception

    @overrides(MountSource)
    def lstat(self, path: str) -> FileInfo:
        realpath = self._realpath(path)
        try:
            stats = os.lstat(realpath)
            linkname = os.readlink(realpath) if stat.S_ISLNK(stats.st_mode) else ""
            return self._stats_to_file_info(stats, self._name(path), linkname)
        except OSError as exception:
            raise translate_os_error(exception, path) from exception

    @staticmethod
    def _dir_entry_to_file_info(dirEntry: os.DirEntry) -> FileInfo:
        try:
            linkname = os.readlink(dirEntry.path) if dirEntry.is_symlink() else ""
        except OSError:
            linkname = ""

        return FolderMountSource._stats_to_file_info(
            dirEntry.stat(follow_symlinks=False), os.fsdecode(dirEntry.name), linkname
        )

    @overrides(MountSource)
    def list(self, path: str) -> builtins.list[FileInfo]:
        realpath = self._realpath(path)
        try:
            with os.scandir(realpath) as entries:
                fileInfos = [FolderMountSource._dir_entry_to_file_info(dirEntry) for dirEntry in entries]
        except OSError as exception:
            raise translate_os_error(exception, path) from exception
        return sorted(fileInfos, key=lambda fileInfo: fileInfo.name)

    @overrides(MountSource)
    def open(self, path: str) -> IO[bytes]:
        realpath = self._realpath(path)
        try:
            return open(realpath, 'rb')
        except OSError as exception:
            raise translate_os_error(exception, path) from exception

    @overrides(MountSource)
    def close(self) -> None:
        self.closed = True
