import io
import os
import platform
from collections.abc import Iterable
from typing import Any, get_type_hints


class ZipServeError(Exception):
    """Base exception for zipserve modules."""


class NotFoundError(ZipServeError, FileNotFoundError):
    """Exception for path segments which do not exist at the current level."""


class NotTraversableError(ZipServeError, NotADirectoryError):
    """Exception for paths continuing below something that is neither a folder nor an archive."""


class NotAFileError(ZipServeError, IsADirectoryError):
    """Exception for trying to open something other than a readable file."""


class InvalidArchiveError(ZipServeError, ValueError):
    """Exception for files which are required to be an archive but could not be decoded as such."""


class IOFailureError(ZipServeError, OSError):
    """Exception for underlying open, read, or seek failures."""


class ClosedError(ZipServeError, ValueError):
    """Exception for operations executed on an already released resource."""


def overrides(parentClass):
    """Simple decorator that checks that a method with the same name exists in the parent class"""

    def overrider(method):
        if platform.python_implementation() == 'PyPy':
            return method

        assert method.__name__ in dir(parentClass)
        parentMethod = getattr(parentClass, method.__name__)
        assert callable(parentMethod)

        if os.getenv('ZIPSERVE_CHECK_OVERRIDES', '').lower() not in ('1', 'yes', 'on', 'enable', 'enabled'):
            return method

        parentTypes = get_type_hints(parentMethod)
        # If the parent is not typed, e.g., io.RawIOBase, then do not show errors for the typed derived class.
        for argument, argumentType in get_type_hints(method).items():
            if argument in parentTypes:
                parentType = parentTypes[argument]
                assert argumentType == parentType, f"{method.__name__}: {argument}: {argumentType} != {parentType}"

        return method

    return overrider


class FixedRawIOBase(io.RawIOBase):
    @overrides(io.RawIOBase)
    def readall(self) -> bytes:
        # It is necessary to implement this, or else the io.RawIOBase.readall implementation would use
        # io.DEFAULT_BUFFER_SIZE (8 KiB) sized reads, each of which would have to acquire the lock anew.
        chunks = []
        while result := self.read():
            chunks.append(result)
        return b"".join(chunks)


def split_path(path: str) -> list[str]:
    """
    Splits a slash-separated path into its segments. Empty segments and '.' are dropped and '..' removes
    the preceding segment. Going up from the root stays at the root, so the result never leaves it.
    """
    parts: list[str] = []
    for part in path.split('/'):
        if part in ('', '.'):
            continue
        if part == '..':
            if parts:
                parts.pop()
            continue
        parts.append(part)
    return parts


def join_path(parts: Iterable[str]) -> str:
    return '/' + '/'.join(parts)


def normpath(path: str) -> str:
    return join_path(split_path(path))


def close_all(closeables: Iterable[Any]) -> None:
    """
    Closes all given objects in order even if some of them fail.
    The first exception is raised after all of them have been tried.
    """
    firstException = None
    for closeable in closeables:
        try:
            closeable.close()
        except Exception as exception:
            if firstException is None:
                firstException = exception
    if firstException is not None:
        raise firstException
