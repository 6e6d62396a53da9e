"""
This module offers a MountSource interface, which has methods for listing folders, getting file metadata,
and opening files, all by path. Metadata is returned as FileInfo objects.

There are multiple implementations of the MountSource interface, split into two submodules:
"formats" and "compositing".

"formats" are MountSource implementations that expose some existing file structure:

 - FolderMountSource: An implementation taking an existing folder on the host as input.
 - ZipMountSource: An implementation for ZIPs using zipfile.

The "compositing" submodule contains MountSource implementations that offer higher-level
functionalities on top of another MountSource implementation:

 - ChainedMountSource: Forwards everything to another MountSource but also closes further
                       resources when it is closed.
 - AutoMountLayer: Shows ZIP archives as folders and transparently descends into them,
                   also into archives nested inside archives.

Example:

    from zipservecore.mountsource.compositing.automount import AutoMountLayer
    from zipservecore.mountsource.formats.folder import FolderMountSource

    with AutoMountLayer(FolderMountSource("/srv/files")) as mountSource:
        print(mountSource.list("/archive.zip"))
        with mountSource.open("/archive.zip/inner.zip/readme.txt") as file:
            print(file.read())
"""

from .MountSource import FileInfo, MountSource, create_directory_file_info, masquerade
