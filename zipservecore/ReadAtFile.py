import io
import threading
from typing import IO, Optional

from .utils import ClosedError, FixedRawIOBase, overrides


class ReadAtFile(FixedRawIOBase):
    """
    Turns a file object, which only offers sequential seek followed by read, into one that can be read
    from at arbitrary offsets by multiple threads.

    All accesses to the underlying file object are serialized with a lock because the seek and the read
    on the shared file position must not interleave with those of another caller. This means that
    concurrent read_at calls do not actually run in parallel. Parallel reads would require one file
    handle per reader or a positional read primitive like os.pread.

    The given file object must not be used directly anymore after wrapping it because its file position
    is owned by this object. It is not closed by this object either. Closing it remains the responsibility
    of whoever opened it.

    Additionally, this class has its own file position, so that it can be used like a normal file object,
    e.g., by zipfile.ZipFile. All reads through that interface are forwarded to read_at.
    """

    def __init__(self, fileObject: IO[bytes], size: Optional[int] = None) -> None:
        """
        size: The size of the underlying file. Reads will never go beyond it. If not given, it will be
              queried by seeking to the end of the file object.
        """
        super().__init__()

        if not fileObject.readable():
            raise ValueError("The file object to wrap must be readable!")
        if not fileObject.seekable():
            raise ValueError("The file object to wrap must be seekable!")

        self.fileObject = fileObject
        self.fileObjectLock = threading.Lock()
        self.size = fileObject.seek(0, io.SEEK_END) if size is None else size
        self.offset = 0

        if self.size is None or self.size < 0:
            raise ValueError(f"Invalid size {self.size} for file object: {fileObject}")

    def _check_closed(self) -> None:
        if self.closed:
            raise ClosedError("I/O operation on closed file.")

    def readinto_at(self, buffer, offset: int) -> int:
        """
        Reads into the given buffer starting at the given offset in the underlying file and returns the
        number of read bytes. Does not change the file position of this object.
        """
        if offset < 0:
            raise ValueError("Trying to read before the start of the file!")
        self._check_closed()

        with memoryview(buffer) as view, view.cast("B") as byteView:  # type: ignore
            size = max(0, min(len(byteView), self.size - offset))
            if size == 0:
                return 0

            with self.fileObjectLock:
                self.fileObject.seek(offset, io.SEEK_SET)
                readBytes = self.fileObject.read(size)

            byteView[: len(readBytes)] = readBytes
        return len(readBytes)

    def read_at(self, size: int, offset: int) -> bytes:
        buffer = bytearray(max(0, min(size, self.size - offset)))
        return bytes(buffer[: self.readinto_at(buffer, offset)])

    @overrides(io.RawIOBase)
    def seekable(self) -> bool:
        return True

    @overrides(io.RawIOBase)
    def readable(self) -> bool:
        return True

    @overrides(io.RawIOBase)
    def readinto(self, buffer):
        readCount = self.readinto_at(buffer, self.offset)
        self.offset += readCount
        return readCount

    @overrides(io.RawIOBase)
    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = self.size - self.offset
        result = self.read_at(size, self.offset)
        self.offset += len(result)
        return result

    @overrides(io.RawIOBase)
    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        self._check_closed()

        if whence == io.SEEK_CUR:
            newOffset = self.offset + offset
        elif whence == io.SEEK_END:
            newOffset = self.size + offset
        elif whence == io.SEEK_SET:
            newOffset = offset
        else:
            raise ValueError(f"Invalid whence value: {whence}")

        if newOffset < 0:
            raise ValueError("Trying to seek before the start of the file!")

        self.offset = newOffset
        return self.offset

    @overrides(io.RawIOBase)
    def tell(self) -> int:
        self._check_closed()
        return self.offset
