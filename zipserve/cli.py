#!/usr/bin/env python3
# PYTHON_ARGCOMPLETE_OK

# We explicitly do want to import everything as late as possible here in order to speed up calls by argcomplete!
# pylint: disable=import-outside-toplevel

import argparse
import logging
import os
import sys
import traceback
from typing import Optional

from zipservecore.utils import ZipServeError

try:
    import argcomplete
except ImportError:
    pass

DEFAULT_PORT = 8080


class _CustomFormatter(argparse.ArgumentDefaultsHelpFormatter, argparse.RawDescriptionHelpFormatter):
    def add_arguments(self, actions):
        actions = sorted(actions, key=lambda x: getattr(x, 'option_strings'))
        super().add_arguments(actions)


def print_versions() -> None:
    import importlib.metadata
    import platform

    from zipservecore import __version__ as coreVersion

    from .version import __version__

    def distribution_version(name: str) -> str:
        try:
            return importlib.metadata.version(name)
        except importlib.metadata.PackageNotFoundError:
            return "not installed"

    print("zipserve", __version__)
    print("zipservecore", coreVersion)
    print()
    print("System Software:")
    print()
    print("Python", platform.python_version())
    print("zipfile", platform.python_version())
    print("rich", distribution_version('rich'))


class PrintVersionAction(argparse.Action):
    def __call__(self, parser, args, values, option_string=None):
        print_versions()
        parser.exit()


def _parse_args(rawArgs: Optional[list[str]] = None):
    parser = argparse.ArgumentParser(
        prog='zipserve',
        formatter_class=_CustomFormatter,
        add_help=False,
        description='''\
Serves a folder over HTTP and shows all ZIP archives inside it as folders.
Archives inside archives are shown as folders, too, so that a file can be downloaded
with a request for, e.g., /archive.zip/inner.zip/readme.txt.
''',
        epilog='''\
Examples:

 - zipserve folder-with-many-archives
 - zipserve --port 8000 --bind 127.0.0.1 folder
''',
    )

    commonGroup = parser.add_argument_group("Optional Arguments")
    positionalGroup = parser.add_argument_group("Positional Options")
    serverGroup = parser.add_argument_group("Server Options")

    # fmt: off
    commonGroup.add_argument(
        '-h', '--help', action='help', default=argparse.SUPPRESS,
        help='Show this help message and exit.')

    commonGroup.add_argument(
        '-v', '--version', action=PrintVersionAction, nargs=0, default=argparse.SUPPRESS,
        help='Print version information and exit.')

    commonGroup.add_argument(
        '-d', '--debug', type=int, default=1,
        help='Sets the debugging level. Higher means more output. Currently, 3 is the highest.')

    serverGroup.add_argument(
        '-p', '--port', type=int, default=DEFAULT_PORT,
        help='The TCP port to listen on. A value of 0 lets the operating system choose a free port.')

    serverGroup.add_argument(
        '-b', '--bind', type=str, default='',
        help='The address to listen on. By default, all interfaces are used.')

    positionalGroup.add_argument(
        'root',
        help='The path to the folder to serve.')
    # fmt: on

    if 'argcomplete' in sys.modules:
        argcomplete.autocomplete(parser)
    return parser.parse_args(rawArgs)


def setup_logging(debug: int) -> None:
    from rich.logging import RichHandler

    if debug >= 3:
        level = logging.DEBUG
    elif debug == 2:
        level = logging.INFO
    elif debug == 1:
        level = logging.WARNING
    else:
        level = logging.ERROR

    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[RichHandler()], force=True)


def process_parsed_arguments(args) -> int:
    if not os.path.isdir(args.root):
        raise argparse.ArgumentTypeError(f"The root to serve must be an existing folder: {args.root}")
    if not 0 <= args.port <= 65535:
        raise argparse.ArgumentTypeError(f"Invalid port: {args.port}")

    from .server import serve

    serve(os.path.abspath(args.root), port=args.port, bind=args.bind)
    return 0


def cli(rawArgs: Optional[list[str]] = None) -> int:
    """
    Command line interface for zipserve. Call with args = [ '--help' ] for a description.

    rawArgs: In general, rawArgs is None, meaning sys.argv is used. When used programmatically with a custom
             list of arguments, the first argument should not be the path to the script / the executable,
             i.e., call either cli() or cli(sys.argv[1:])!
    """

    # Manually parse --debug argument in case argument parsing with argparse itself goes wrong.
    tmpArgs = rawArgs if rawArgs else sys.argv
    debug = 1
    for i in range(len(tmpArgs) - 1):
        if tmpArgs[i] in ['-d', '--debug'] and tmpArgs[i + 1].isdecimal():
            try:
                debug = int(tmpArgs[i + 1])
            except ValueError:
                continue

    try:
        args = _parse_args(rawArgs)
        setup_logging(args.debug)
        return process_parsed_arguments(args)
    except (ZipServeError, argparse.ArgumentTypeError, ValueError, OSError) as exception:
        print("[Error]", exception)
        if debug >= 3:
            traceback.print_exc()

    return 1
