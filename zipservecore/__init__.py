"""Zipserve Core

This is the backend of zipserve. It is intended to be used as a library.

It offers a read-only file system interface, which is sufficient for serving files over HTTP
and which shows ZIP archives, also ZIP archives inside other ZIP archives, as if they were folders.

The most common usecase should be covered by wrapping a folder into an AutoMountLayer.
For more information, see the zipservecore.mountsource submodule.

Example:

    from zipservecore.mountsource.compositing.automount import AutoMountLayer
    from zipservecore.mountsource.formats.folder import FolderMountSource

    with AutoMountLayer(FolderMountSource("/srv/files")) as mountSource:
        print([fileInfo.name for fileInfo in mountSource.list("/")])
        info = mountSource.stat("/archive.zip/bar")

        print("Contents of /archive.zip/bar:")
        with mountSource.open("/archive.zip/bar") as file:
            print(file.read())
"""

from .version import __version__
