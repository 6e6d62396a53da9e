import io
from typing import IO, Any

from .utils import ClosedError, close_all, overrides


class ChainedFile(io.RawIOBase):
    """
    Wraps a file object and ties the lifetime of further resources to it. All reading operations are
    forwarded to the wrapped file object. Closing this object closes the wrapped file object first and
    then all other given resources in order.

    This is used to hand out a file from inside an archive while the archive reader and the file object
    the archive is read from still have to stay open until the caller is done with the file.
    """

    def __init__(self, fileObject: IO[bytes], *closeables: Any) -> None:
        super().__init__()
        self.fileObject = fileObject
        self.closeables = list(closeables)

    def __getattr__(self, name: str):
        # Only called for attributes not found otherwise, e.g., 'name' or 'mode' of the wrapped file.
        if name in ('fileObject', 'closeables'):
            raise AttributeError(name)
        return getattr(self.fileObject, name)

    def _check_closed(self) -> None:
        if self.closed:
            raise ClosedError("I/O operation on closed file.")

    @overrides(io.RawIOBase)
    def close(self) -> None:
        if self.closed:
            return

        try:
            close_all([self.fileObject, *self.closeables])
        finally:
            super().close()

    @overrides(io.RawIOBase)
    def seekable(self) -> bool:
        return self.fileObject.seekable()

    @overrides(io.RawIOBase)
    def readable(self) -> bool:
        return self.fileObject.readable()

    @overrides(io.RawIOBase)
    def readinto(self, buffer):
        with memoryview(buffer) as view, view.cast("B") as byteView:  # type: ignore
            readBytes = self.read(len(byteView))
            byteView[: len(readBytes)] = readBytes
        return len(readBytes)

    @overrides(io.RawIOBase)
    def read(self, size: int = -1) -> bytes:
        self._check_closed()
        return self.fileObject.read(size)

    @overrides(io.RawIOBase)
    def readall(self) -> bytes:
        return self.read(-1)

    @overrides(io.RawIOBase)
    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        self._check_closed()
        return self.fileObject.seek(offset, whence)

    @overrides(io.RawIOBase)
    def tell(self) -> int:
        self._check_closed()
        return self.fileObject.tell()


def chain_file(fileObject: IO[bytes], *closeables: Any) -> ChainedFile:
    return ChainedFile(fileObject, *closeables)
