import builtins
from typing import IO, Any

from zipservecore.mountsource import FileInfo, MountSource
from zipservecore.utils import close_all, overrides


class ChainedMountSource(MountSource):
    """
    Forwards all calls to the given mount source. Closing it closes the given mount source first and then
    all other given resources in order, e.g., the file object an archive mount source reads from.
    If any of them fails to close, the first exception is raised after trying to close all of them.
    """

    def __init__(self, mountSource: MountSource, *closeables: Any) -> None:
        self.mountSource = mountSource
        self.closeables = list(closeables)

    def __repr__(self) -> str:
        return f"ChainedMountSource({self.mountSource!r})"

    @overrides(MountSource)
    def stat(self, path: str) -> FileInfo:
        return self.mountSource.stat(path)

    @overrides(MountSource)
    def lstat(self, path: str) -> FileInfo:
        return self.mountSource.lstat(path)

    @overrides(MountSource)
    def list(self, path: str) -> builtins.list[FileInfo]:
        return self.mountSource.list(path)

    @overrides(MountSource)
    def open(self, path: str) -> IO[bytes]:
        return self.mountSource.open(path)

    @overrides(MountSource)
    def close(self) -> None:
        close_all([self.mountSource, *self.closeables])


def chain_mount_source(mountSource: MountSource, *closeables: Any) -> ChainedMountSource:
    return ChainedMountSource(mountSource, *closeables)
