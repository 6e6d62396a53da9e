# pylint: disable=wrong-import-position
# pylint: disable=protected-access

import concurrent.futures
import os
import stat
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest  # noqa: E402
from zipservecore.ChainedFile import chain_file  # noqa: E402
from zipservecore.mountsource.compositing.automount import AutoMountLayer  # noqa: E402
from zipservecore.mountsource.formats.folder import FolderMountSource  # noqa: E402
from zipservecore.utils import (  # noqa: E402
    InvalidArchiveError,
    IOFailureError,
    NotAFileError,
    NotFoundError,
    NotTraversableError,
)

from helpers import (  # noqa: E402
    CORRUPT_CONTENTS,
    LEAF_CONTENTS,
    REGULAR_CONTENTS,
    ZIP_CONTENTS,
    CountingMountSource,
    create_test_tree,
    create_unsupported_version_zip_bytes,
)


@pytest.fixture(name="layer")
def fixture_layer(tmp_path):
    create_test_tree(tmp_path)
    counting = CountingMountSource(FolderMountSource(tmp_path))
    with AutoMountLayer(counting) as mountSource:
        yield mountSource, counting
    assert counting.openCount == 0


class FailingCloser:
    def close(self):
        raise IOFailureError("Failed to close because of: Input/output error")


class FailingCloseMountSource(CountingMountSource):
    def open(self, path):
        return chain_file(super().open(path), FailingCloser())

class TestAutoMountLayer:
    @staticmethod
    def test_open_regular_file(layer):
        mountSource, counting = layer
        with mountSource.open('/regular.txt') as file:
            assert file.read() == REGULAR_CONTENTS
            assert counting.openCount == 1
        assert counting.openCount == 0

    @staticmethod
    def test_open_file_in_archive(layer):
        mountSource, counting = layer
        for path, contents in ZIP_CONTENTS.items():
            with mountSource.open('/a.zip/' + path) as file:
                assert counting.openCount == 1
                assert file.read() == contents
                file.seek(2)
                assert file.read(3) == contents[2:5]
            assert counting.openCount == 0

    @staticmethod
    def test_open_file_in_nested_archive(layer):
        mountSource, counting = layer
        file = mountSource.open('/outer.zip/inner.zip/leaf.txt')
        # Only the outer archive is a host file. The inner archive is read from inside the outer one.
        assert counting.openCount == 1
        assert file.read() == LEAF_CONTENTS
        file.close()
        assert counting.openCount == 0

    @staticmethod
    def test_open_archive_returns_raw_bytes(layer, tmp_path):
        mountSource, _ = layer
        with mountSource.open('/a.zip') as file:
            assert file.read() == (tmp_path / 'a.zip').read_bytes()
        with mountSource.open('/outer.zip/inner.zip') as file:
            assert file.read(4) == b"PK\x03\x04"

    @staticmethod
    def test_stat_archive_is_folder(layer):
        mountSource, counting = layer
        fileInfo = mountSource.stat('/a.zip')
        assert fileInfo.is_dir()
        assert fileInfo.name == 'a.zip'
        assert fileInfo.size == 0
        assert fileInfo.mtime == 0
        assert stat.S_IMODE(fileInfo.mode) == 0o555

        assert mountSource.stat('/outer.zip/inner.zip').is_dir()
        assert mountSource.stat('/folder/nested.zip').is_dir()
        assert counting.openCount == 0

    @staticmethod
    def test_stat_files(layer):
        mountSource, counting = layer
        assert mountSource.stat('/').is_dir()
        assert mountSource.stat('/folder').is_dir()

        fileInfo = mountSource.stat('/regular.txt')
        assert fileInfo.is_file()
        assert fileInfo.size == len(REGULAR_CONTENTS)

        fileInfo = mountSource.stat('/a.zip/sub/y.txt')
        assert fileInfo.is_file()
        assert fileInfo.name == 'y.txt'
        assert fileInfo.size == len(ZIP_CONTENTS['sub/y.txt'])

        assert mountSource.stat('/a.zip/sub').is_dir()
        assert mountSource.stat('/outer.zip/inner.zip/leaf.txt').size == len(LEAF_CONTENTS)
        assert counting.openCount == 0

    @staticmethod
    def test_stat_is_idempotent(layer):
        mountSource, _ = layer
        for path in ['/', '/regular.txt', '/a.zip', '/a.zip/x.txt', '/outer.zip/inner.zip', '/corrupt.zip']:
            assert mountSource.stat(path) == mountSource.stat(path)

    @staticmethod
    def test_stat_corrupt_archive_is_file(layer):
        mountSource, counting = layer
        fileInfo = mountSource.stat('/corrupt.zip')
        assert fileInfo.is_file()
        assert fileInfo.size == len(CORRUPT_CONTENTS)
        assert counting.openCount == 0

    @staticmethod
    def test_lstat(layer):
        mountSource, _ = layer
        linkInfo = mountSource.lstat('/links.zip/link')
        assert linkInfo.is_symlink()
        assert linkInfo.linkname == 'x.txt'
        assert mountSource.lstat('/a.zip').is_dir()

    @staticmethod
    def test_list_root(layer):
        mountSource, counting = layer
        fileInfos = {fileInfo.name: fileInfo for fileInfo in mountSource.list('/')}
        assert sorted(fileInfos.keys()) == [
            'a.zip',
            'corrupt.zip',
            'folder',
            'links.zip',
            'outer.zip',
            'regular.txt',
        ]
        assert fileInfos['a.zip'].is_dir()
        assert fileInfos['outer.zip'].is_dir()
        assert fileInfos['folder'].is_dir()
        assert fileInfos['corrupt.zip'].is_file()
        assert fileInfos['regular.txt'].is_file()
        assert counting.openCount == 0

    @staticmethod
    def test_list_archive(layer):
        mountSource, counting = layer
        fileInfos = mountSource.list('/a.zip')
        assert [fileInfo.name for fileInfo in fileInfos] == ['sub', 'x.txt']
        assert fileInfos[0].is_dir()
        assert fileInfos[1].is_file()
        assert fileInfos[1].size == len(ZIP_CONTENTS['x.txt'])

        assert [fileInfo.name for fileInfo in mountSource.list('/a.zip/sub')] == ['y.txt']
        assert mountSource.list('/a.zip/') == fileInfos
        assert counting.openCount == 0

    @staticmethod
    def test_list_nested_archive(layer):
        mountSource, counting = layer
        fileInfos = {fileInfo.name: fileInfo for fileInfo in mountSource.list('/outer.zip')}
        assert sorted(fileInfos.keys()) == ['inner.zip', 'notes.txt']
        assert fileInfos['inner.zip'].is_dir()

        assert [fileInfo.name for fileInfo in mountSource.list('/outer.zip/inner.zip')] == ['leaf.txt']
        assert [fileInfo.name for fileInfo in mountSource.list('/folder/nested.zip')] == ['z.txt']
        assert counting.openCount == 0

    @staticmethod
    def test_missing_paths(layer):
        mountSource, counting = layer
        for path in ['/missing', '/missing/x', '/a.zip/missing', '/a.zip/sub/missing', '/outer.zip/inner.zip/missing']:
            with pytest.raises(NotFoundError):
                mountSource.stat(path)
            with pytest.raises(NotFoundError):
                mountSource.open(path)
            with pytest.raises(FileNotFoundError):
                mountSource.list(path)
        assert counting.openCount == 0

    @staticmethod
    def test_descending_into_non_archive(layer):
        mountSource, counting = layer
        for path in ['/regular.txt/x', '/corrupt.zip/x', '/corrupt.zip/x/y']:
            with pytest.raises(InvalidArchiveError):
                mountSource.stat(path)
            with pytest.raises(InvalidArchiveError):
                mountSource.open(path)
            with pytest.raises(InvalidArchiveError):
                mountSource.list(path)
        assert counting.openCount == 0

    @staticmethod
    def test_descending_into_unsupported_archive(layer, tmp_path):
        mountSource, counting = layer
        (tmp_path / 'unsupported.zip').write_bytes(create_unsupported_version_zip_bytes({'a.txt': b"a"}))

        assert mountSource.stat('/unsupported.zip').is_file()
        with pytest.raises(InvalidArchiveError):
            mountSource.open('/unsupported.zip/a.txt')
        with pytest.raises(InvalidArchiveError):
            mountSource.stat('/unsupported.zip/a.txt')
        assert counting.openCount == 0

    @staticmethod
    def test_descending_into_file_in_archive(layer):
        mountSource, counting = layer
        with pytest.raises(InvalidArchiveError):
            mountSource.open('/a.zip/x.txt/foo')
        with pytest.raises(NotTraversableError):
            mountSource.stat('/links.zip/link/foo')
        assert counting.openCount == 0

    @staticmethod
    def test_open_folder(layer):
        mountSource, counting = layer
        with pytest.raises(NotAFileError):
            mountSource.open('/folder')
        with pytest.raises(NotAFileError):
            mountSource.open('/a.zip/sub')
        assert counting.openCount == 0

    @staticmethod
    def test_path_normalization(layer):
        mountSource, _ = layer
        assert mountSource.stat('a.zip//sub/./y.txt') == mountSource.stat('/a.zip/sub/y.txt')
        assert mountSource.stat('/a.zip/sub/../x.txt') == mountSource.stat('/a.zip/x.txt')
        assert mountSource.stat('/../../regular.txt') == mountSource.stat('/regular.txt')

    @staticmethod
    def test_concurrent_opens(layer):
        mountSource, counting = layer
        paths = {
            '/regular.txt': REGULAR_CONTENTS,
            '/a.zip/x.txt': ZIP_CONTENTS['x.txt'],
            '/a.zip/sub/y.txt': ZIP_CONTENTS['sub/y.txt'],
            '/outer.zip/inner.zip/leaf.txt': LEAF_CONTENTS,
        }

        def read(path):
            with mountSource.open(path) as file:
                return file.read() == paths[path]

        with concurrent.futures.ThreadPoolExecutor(8) as pool:
            results = list(pool.map(read, list(paths.keys()) * 25))

        assert all(results)
        assert counting.openCount == 0

    @staticmethod
    def test_close_errors_do_not_hide_lookup_errors(tmp_path):
        create_test_tree(tmp_path)
        counting = FailingCloseMountSource(FolderMountSource(tmp_path))
        mountSource = AutoMountLayer(counting)

        with pytest.raises(NotFoundError):
            mountSource.stat('/a.zip/missing')
        with pytest.raises(NotFoundError):
            mountSource.open('/a.zip/missing')
        with pytest.raises(NotFoundError):
            mountSource.list('/a.zip/missing')

        # Without another error, the failed close is still reported.
        with pytest.raises(IOFailureError):
            mountSource.stat('/a.zip/x.txt')
        assert counting.openCount == 0
