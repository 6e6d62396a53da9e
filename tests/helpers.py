import builtins
import io
import os
import stat
import sys
import threading
import zipfile
from typing import IO

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# pylint: disable=wrong-import-position
from zipservecore.ChainedFile import chain_file  # noqa: E402
from zipservecore.mountsource import FileInfo, MountSource  # noqa: E402
from zipservecore.utils import overrides  # noqa: E402

# Entries of a.zip as created by create_test_tree. a.zip is deflated while outer.zip is stored
# so that both compression methods are read through the ReadAtFile wrapper.
ZIP_CONTENTS = {
    'x.txt': b"hello from x\n",
    'sub/y.txt': b"why\n" * 1000,
}
LEAF_CONTENTS = b"leaf contents\n"
REGULAR_CONTENTS = b"just a regular file\n"
CORRUPT_CONTENTS = b"PK\x03\x04 this is not really a zip file"


def create_zip_bytes(files: dict, compression=zipfile.ZIP_DEFLATED) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', compression=compression) as archive:
        for name, contents in files.items():
            archive.writestr(name, contents)
    return buffer.getvalue()


def create_symlink_zip_bytes(name: str, target: str, files: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as archive:
        for fileName, contents in files.items():
            archive.writestr(fileName, contents)
        info = zipfile.ZipInfo(name)
        info.create_system = 3  # Unix
        info.external_attr = (stat.S_IFLNK | 0o777) << 16
        archive.writestr(info, target)
    return buffer.getvalue()


def create_unsupported_version_zip_bytes(files: dict) -> bytes:
    """Returns a ZIP whose last central directory entry requires a version no decoder supports."""
    data = bytearray(create_zip_bytes(files))
    central = data.rfind(b"PK\x01\x02")
    # Bytes 6 and 7 of a central directory header hold the version needed to extract.
    data[central + 6] = 0xFF
    return bytes(data)


def create_test_tree(folder) -> None:
    """
    Creates this hierarchy inside the given folder:

        regular.txt
        a.zip                 x.txt, sub/y.txt
        outer.zip             inner.zip (leaf.txt), notes.txt
        corrupt.zip
        links.zip             x.txt, link -> x.txt
        folder/nested.zip     z.txt
        folder/index.html
    """
    folder = str(folder)

    def write(path: str, contents: bytes) -> None:
        path = os.path.join(folder, path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'wb') as file:
            file.write(contents)

    innerZip = create_zip_bytes({'leaf.txt': LEAF_CONTENTS})

    write('regular.txt', REGULAR_CONTENTS)
    write('a.zip', create_zip_bytes(ZIP_CONTENTS))
    write('outer.zip', create_zip_bytes({'inner.zip': innerZip, 'notes.txt': b"notes\n"}, zipfile.ZIP_STORED))
    write('corrupt.zip', CORRUPT_CONTENTS)
    write('links.zip', create_symlink_zip_bytes('link', 'x.txt', {'x.txt': b"x\n"}))
    write('folder/nested.zip', create_zip_bytes({'z.txt': b"zzz\n"}))
    write('folder/index.html', b"<html>index</html>\n")


class CountingMountSource(MountSource):
    """Forwards everything to another mount source and counts the file objects it has handed out."""

    def __init__(self, mountSource: MountSource) -> None:
        self.mountSource = mountSource
        self.lock = threading.Lock()
        self.openedCount = 0
        self.closedCount = 0

    @property
    def openCount(self) -> int:
        with self.lock:
            return self.openedCount - self.closedCount

    def _on_close(self) -> None:
        with self.lock:
            self.closedCount += 1

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
        fileObject = self.mountSource.open(path)
        with self.lock:
            self.openedCount += 1
        return chain_file(fileObject, _CloseCounter(self))

    @overrides(MountSource)
    def close(self) -> None:
        self.mountSource.close()


class _CloseCounter:
    def __init__(self, counter: CountingMountSource) -> None:
        self.counter = counter
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.counter._on_close()  # pylint: disable=protected-access
