"""Zipserve

This is the frontend for zipserve. It serves a folder over HTTP and shows all ZIP archives
in it as folders. It is normally not intended to be used as a library.

The installed zipserve script will load this module and call its 'cli' function,
which could also be done programmatically.

Example:

    from zipserve.cli import cli

    cli(["--port", "8000", "/srv/files"])
"""

from .version import __version__
