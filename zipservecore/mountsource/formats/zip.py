import builtins
import datetime
import logging
import stat
import threading
import zipfile
from typing import IO, Optional, Union

from zipservecore.mountsource import FileInfo, MountSource, create_directory_file_info
from zipservecore.utils import (
    ClosedError,
    InvalidArchiveError,
    NotAFileError,
    NotFoundError,
    NotTraversableError,
    overrides,
    split_path,
)

logger = logging.getLogger(__name__)


class ZipMountSource(MountSource):
    """
    Exposes the entries of a ZIP archive as a read-only folder hierarchy. Folders, which only exist
    implicitly as part of the entry paths, are shown like explicitly stored ones.
    """

    def __init__(self, fileOrPath: Union[str, IO[bytes]], name: Optional[str] = None) -> None:
        """
        fileOrPath: The archive to open. A given file object is not closed by this mount source.
        name: The path this archive is shown at. It is used as the name of the root folder.
        """
        self.archiveFilePath = fileOrPath if isinstance(fileOrPath, str) else None
        self.name = name if name is not None else (self.archiveFilePath or '/')
        self.closed = False

        try:
            self.fileObject = zipfile.ZipFile(fileOrPath, 'r')
        except (zipfile.BadZipFile, zipfile.LargeZipFile, NotImplementedError, EOFError, ValueError) as exception:
            raise InvalidArchiveError(f"Failed to open '{self.name}' as ZIP archive: {exception}") from exception

        # Maps normalized paths without leading slash to the zip entries. Folders map to None if they are only
        # implied by the paths of entries inside them.
        self.files: dict[str, Optional[zipfile.ZipInfo]] = {'': None}
        self.children: dict[str, dict[str, str]] = {'': {}}
        self._linkLock = threading.Lock()
        self._linknames: dict[str, str] = {}

        for info in self.fileObject.infolist():
            parts = split_path(info.filename)
            if not parts:
                continue

            for i in range(1, len(parts)):
                self._add_entry(parts[:i], None)
            self._add_entry(parts, info)

        logger.debug("Opened ZIP archive %s with %d entries.", self.name, len(self.files) - 1)

    def __repr__(self) -> str:
        return f"ZipMountSource({self.name!r})"

    def _add_entry(self, parts: builtins.list[str], info: Optional[zipfile.ZipInfo]) -> None:
        path = '/'.join(parts)
        parent = '/'.join(parts[:-1])
        self.children.setdefault(parent, {})[parts[-1]] = path

        # Keep explicit entries if the same folder is also implied by another entry. For duplicate file
        # entries, the last one wins, similar to extracting the archive in order.
        if info is not None or path not in self.files:
            self.files[path] = info
        if info is None or info.is_dir():
            self.children.setdefault(path, {})

    def _check_closed(self) -> None:
        if self.closed:
            raise ClosedError(f"{self} has already been closed!")

    def _find(self, path: str) -> tuple[builtins.list[str], Optional[zipfile.ZipInfo]]:
        self._check_closed()
        parts = split_path(path)
        key = '/'.join(parts)
        if key in self.files:
            return parts, self.files[key]

        # Distinguish between a simply missing entry and a path trying to descend into a file.
        for i in range(len(parts) - 1, 0, -1):
            parentKey = '/'.join(parts[:i])
            if parentKey in self.files:
                if parentKey not in self.children:
                    raise NotTraversableError(f"'{parentKey}' in archive '{self.name}' is not a folder!")
                break
        raise NotFoundError(f"Path '{path}' does not exist in archive '{self.name}'!")

    def _linkname(self, info: zipfile.ZipInfo) -> str:
        # zipfile has no API for links. The link target is stored as the file contents.
        with self._linkLock:
            if info.filename not in self._linknames:
                self._linknames[info.filename] = self.fileObject.read(info).decode(errors='surrogateescape')
            return self._linknames[info.filename]

    def _convert_to_file_info(self, name: str, info: Optional[zipfile.ZipInfo]) -> FileInfo:
        if info is None:
            return create_directory_file_info(name)

        mtime = datetime.datetime(*info.date_time, tzinfo=datetime.timezone.utc).timestamp() if info.date_time else 0

        # According to section 4.4.15 of the ZIP specification, the external attributes are host-system
        # dependent. For archives created on Unix, the upper 16 bits contain the file mode including the type.
        linkname = ""
        unixMode = info.external_attr >> 16
        mode = unixMode & 0o777
        if stat.S_ISLNK(unixMode):
            linkname = self._linkname(info)
            mode = mode | stat.S_IFLNK
        elif info.is_dir():
            mode = (mode or 0o555) | stat.S_IFDIR
        else:
            mode = (mode or 0o444) | stat.S_IFREG

        size = info.file_size
        if info.is_dir():
            size = 0
        elif linkname:
            size = len(linkname.encode(errors='surrogateescape'))

        # fmt: off
        return FileInfo(
            name     = name,
            size     = size,
            mtime    = mtime,
            mode     = mode,
            linkname = linkname,
        )
        # fmt: on

    def _root_name(self) -> str:
        parts = split_path(self.name)
        return parts[-1] if parts else '/'

    @overrides(MountSource)
    def stat(self, path: str) -> FileInfo:
        parts, info = self._find(path)
        return self._convert_to_file_info(parts[-1] if parts else self._root_name(), info)

    @overrides(MountSource)
    def list(self, path: str) -> builtins.list[FileInfo]:
        parts, info = self._find(path)
        key = '/'.join(parts)
        if key not in self.children:
            raise NotTraversableError(f"Path '{path}' in archive '{self.name}' is not a folder!")

        return [
            self._convert_to_file_info(name, self.files[childKey])
            for name, childKey in sorted(self.children[key].items())
        ]

    @overrides(MountSource)
    def open(self, path: str) -> IO[bytes]:
        parts, info = self._find(path)
        if info is None or info.is_dir():
            raise NotAFileError(f"Path '{path}' in archive '{self.name}' is a folder, not a file!")

        # CPython's zipfile module handles multiple file objects being opened and reading from the
        # same underlying file object concurrently by using a _SharedFile class, which includes a lock.
        try:
            return self.fileObject.open(info, 'r')
        except (zipfile.BadZipFile, NotImplementedError, RuntimeError) as exception:
            raise InvalidArchiveError(
                f"Failed to open '{path}' in archive '{self.name}' because of: {exception}"
            ) from exception

    @overrides(MountSource)
    def close(self) -> None:
        self.closed = True
        self.fileObject.close()
