import builtins
import logging
from typing import IO, Callable, Optional, TypeVar

from zipservecore.ChainedFile import chain_file
from zipservecore.mountsource import FileInfo, MountSource, masquerade
from zipservecore.mountsource.compositing.chained import chain_mount_source
from zipservecore.mountsource.formats.zip import ZipMountSource
from zipservecore.ReadAtFile import ReadAtFile
from zipservecore.utils import NotTraversableError, join_path, overrides, split_path

logger = logging.getLogger(__name__)

ResultType = TypeVar('ResultType')


class AutoMountLayer(MountSource):
    """
    This mount source takes another mount source and shows the contents of all files, which can be opened
    as ZIP archives, as if those were folders. Paths are resolved segment by segment. When a segment
    resolves to a file while there are still segments left, the file is opened as ZIP archive and the
    remaining path is resolved inside the archive by another AutoMountLayer. This makes it work for archives
    nested to arbitrary depth.

    Nothing is cached. Each call opens the archives it needs anew. Calls, which only return metadata, close
    all archives before returning. File objects returned by open close all archives and host files opened
    to reach them when they are closed themselves.

    The metadata of archives is replaced by that of a folder, but opening an archive path directly still
    returns the raw archive contents.
    """

    __slots__ = ('mountSource',)

    def __init__(self, mountSource: MountSource) -> None:
        self.mountSource = mountSource

    def __repr__(self) -> str:
        return f"AutoMountLayer({self.mountSource!r})"

    def _open_archive(self, path: str, fileInfo: FileInfo) -> MountSource:
        """
        Opens the file at the given path in the underlying mount source as ZIP archive.
        Closing the returned mount source also closes the opened file.
        Raises InvalidArchiveError if it is not a ZIP archive.
        """
        fileObject = self.mountSource.open(path)
        try:
            readAtFile = ReadAtFile(fileObject, fileInfo.size)
            archive = ZipMountSource(readAtFile, name=path)
        except Exception:
            fileObject.close()
            raise
        return chain_mount_source(archive, readAtFile, fileObject)

    def _try_to_open_archive(self, path: str, fileInfo: FileInfo) -> Optional[MountSource]:
        """Returns None instead of raising an exception if the file can not be opened as archive."""
        if not fileInfo.is_file():
            return None

        try:
            return self._open_archive(path, fileInfo)
        except Exception as exception:
            logger.debug("Not an archive: %s because of: %s", path, exception)
            return None

    def _is_archive(self, path: str) -> bool:
        try:
            fileInfo = self.mountSource.stat(path)
        except Exception:
            return False

        archive = self._try_to_open_archive(path, fileInfo)
        if archive is None:
            return False

        self._close_quietly(archive, path)
        return True

    @staticmethod
    def _close_quietly(archive: MountSource, path: str) -> None:
        # Close errors are only logged so that they can not replace an exception that is already propagating.
        try:
            archive.close()
        except Exception as exception:
            logger.debug("Failed to close archive %s because of: %s", path, exception)

    def _walk(
        self,
        path: str,
        onLeaf: Callable[[str], ResultType],
        inArchive: Callable[[MountSource, str], ResultType],
        keepArchiveOpen: bool = False,
    ):
        """
        Resolves the path until either the whole path has been consumed, in which case onLeaf is called
        with the path in the underlying mount source, or until a file is reached, in which case it is opened
        as an archive and inArchive is called with the archive mount source and the remaining path in it.

        keepArchiveOpen: If true, the result of inArchive must be a file object, which is returned with the
                         opened archive chained to it. Else, the archive is closed before returning.
        """
        prefix = '/'
        parts = split_path(path)
        while parts:
            fileInfo = self.mountSource.stat(prefix)
            if fileInfo.is_dir():
                prefix = join_path(split_path(prefix) + [parts.pop(0)])
                continue

            if not fileInfo.is_file():
                raise NotTraversableError(f"Can not descend into '{prefix}' because it is neither folder nor file!")

            archive = AutoMountLayer(self._open_archive(prefix, fileInfo))
            try:
                result = inArchive(archive, join_path(parts))
            except Exception:
                self._close_quietly(archive, prefix)
                raise

            if keepArchiveOpen:
                return chain_file(result, archive)
            archive.close()
            return result

        return onLeaf(prefix)

    def _stat(self, path: str, followLinks: bool) -> FileInfo:
        def stat_leaf(leafPath: str) -> FileInfo:
            fileInfo = self.mountSource.stat(leafPath) if followLinks else self.mountSource.lstat(leafPath)
            return masquerade(fileInfo, not fileInfo.is_dir() and self._is_archive(leafPath))

        def stat_in_archive(archive: MountSource, pathInArchive: str) -> FileInfo:
            return archive.stat(pathInArchive) if followLinks else archive.lstat(pathInArchive)

        logger.debug("stat: %s", path)
        try:
            fileInfo = self._walk(path, stat_leaf, stat_in_archive)
        except Exception as exception:
            logger.debug("stat: %s failed: %s", path, exception)
            raise
        logger.debug("stat: %s -> %s", path, fileInfo)
        return fileInfo

    @overrides(MountSource)
    def stat(self, path: str) -> FileInfo:
        return self._stat(path, followLinks=True)

    @overrides(MountSource)
    def lstat(self, path: str) -> FileInfo:
        return self._stat(path, followLinks=False)

    @overrides(MountSource)
    def list(self, path: str) -> builtins.list[FileInfo]:
        def list_leaf(leafPath: str) -> builtins.list[FileInfo]:
            archive = self._try_to_open_archive(leafPath, self.mountSource.stat(leafPath))
            if archive is not None:
                layer = AutoMountLayer(archive)
                try:
                    fileInfos = layer.list('/')
                except Exception:
                    self._close_quietly(layer, leafPath)
                    raise
                layer.close()
                return fileInfos

            return [
                masquerade(
                    fileInfo,
                    not fileInfo.is_dir() and self._is_archive(join_path(split_path(leafPath) + [fileInfo.name])),
                )
                for fileInfo in self.mountSource.list(leafPath)
            ]

        logger.debug("list: %s", path)
        try:
            fileInfos = self._walk(path, list_leaf, lambda archive, pathInArchive: archive.list(pathInArchive))
        except Exception as exception:
            logger.debug("list: %s failed: %s", path, exception)
            raise
        logger.debug("list: %s -> %s", path, [fileInfo.name for fileInfo in fileInfos])
        return fileInfos

    @overrides(MountSource)
    def open(self, path: str) -> IO[bytes]:
        logger.debug("open: %s", path)
        try:
            return self._walk(
                path,
                self.mountSource.open,
                lambda archive, pathInArchive: archive.open(pathInArchive),
                keepArchiveOpen=True,
            )
        except Exception as exception:
            logger.debug("open: %s failed: %s", path, exception)
            raise

    @overrides(MountSource)
    def close(self) -> None:
        self.mountSource.close()
