import datetime
import email.utils
import functools
import html
import io
import logging
import mimetypes
import sys
import urllib.parse
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from typing import IO, Optional

from zipservecore.mountsource import FileInfo, MountSource
from zipservecore.mountsource.compositing.automount import AutoMountLayer
from zipservecore.mountsource.formats.folder import FolderMountSource
from zipservecore.utils import InvalidArchiveError, join_path, normpath, split_path

from .version import __version__

logger = logging.getLogger(__name__)

# Errors which mean that the requested path can not be resolved to anything, as opposed to a failing server.
NOT_FOUND_ERRORS = (FileNotFoundError, NotADirectoryError, IsADirectoryError, InvalidArchiveError)

COPY_BUFFER_SIZE = 64 * 1024


def parse_byte_range(header: str, size: int) -> Optional[tuple[int, int]]:
    """
    Parses the value of a HTTP Range header and returns the inclusive first and last byte offsets.
    Returns None if the header should be ignored, i.e., it is malformed or requests multiple ranges,
    in which case the whole file should be sent. Raises ValueError if the range can not be satisfied.
    """
    unit, separator, ranges = header.partition('=')
    if not separator or unit.strip().lower() != 'bytes':
        return None

    ranges = ranges.strip()
    if ',' in ranges:
        return None

    first, separator, last = ranges.partition('-')
    first = first.strip()
    last = last.strip()
    if not separator:
        return None

    if not first:
        if not last.isdigit():
            return None
        suffixLength = int(last)
        if suffixLength == 0 or size == 0:
            raise ValueError(f"Suffix range {header} can not be satisfied for size {size}!")
        return max(0, size - suffixLength), size - 1

    if not first.isdigit() or (last and not last.isdigit()):
        return None

    start = int(first)
    end = int(last) if last else size - 1
    if last and end < start:
        return None
    if start >= size:
        raise ValueError(f"Range {header} starts after the end of the file with size {size}!")
    return start, min(end, size - 1)


class MountSourceRequestHandler(SimpleHTTPRequestHandler):
    """
    Serves GET and HEAD requests by mapping the request path onto a MountSource. Folders are shown as
    HTML listings, files are sent with support for single byte ranges.
    """

    server_version = "zipserve/" + __version__

    def __init__(self, *args, mountSource: MountSource, **kwargs) -> None:
        # Must be set before calling the base constructor because that already handles the request.
        self.mountSource = mountSource
        self._remainingSize = 0
        super().__init__(*args, **kwargs)

    def log_message(self, format, *args):  # pylint: disable=redefined-builtin
        logger.info("%s - %s", self.address_string(), format % args)

    def do_GET(self):
        result = self.send_head()
        if result is None:
            return

        with result as file:
            try:
                self.copyfile(file, self.wfile)
            except (ConnectionError, TimeoutError) as exception:
                logger.info("Client %s went away: %s", self.address_string(), exception)
                self.close_connection = True
            except Exception as exception:
                # Headers are already sent at this point. Closing the connection is the only way to signal
                # to the client that the response is incomplete.
                logger.error(
                    "Failed to send %s because of: %s", self.path, exception, exc_info=logger.isEnabledFor(logging.DEBUG)
                )
                self.close_connection = True

    def do_HEAD(self):
        result = self.send_head()
        if result is not None:
            result.close()

    def copyfile(self, source, outputfile):
        while self._remainingSize > 0:
            data = source.read(min(self._remainingSize, COPY_BUFFER_SIZE))
            if not data:
                raise EOFError(f"File ended {self._remainingSize} B before the announced size!")
            outputfile.write(data)
            self._remainingSize -= len(data)

    def _send_exception(self, exception: Exception) -> None:
        if isinstance(exception, NOT_FOUND_ERRORS):
            logger.debug("Not found: %s because of: %s", self.path, exception)
            self.send_error(HTTPStatus.NOT_FOUND, "File not found")
            return

        logger.error(
            "Failed to serve %s because of: %s", self.path, exception, exc_info=logger.isEnabledFor(logging.DEBUG)
        )
        self.send_error(HTTPStatus.INTERNAL_SERVER_ERROR, "Internal server error")

    def send_head(self) -> Optional[IO[bytes]]:
        splitPath = urllib.parse.urlsplit(self.path)
        urlPath = urllib.parse.unquote(splitPath.path, errors='surrogatepass')
        path = normpath(urlPath)

        try:
            fileInfo = self.mountSource.stat(path)
            if fileInfo.is_dir():
                if not urlPath.endswith('/'):
                    self.send_response(HTTPStatus.MOVED_PERMANENTLY)
                    location = urllib.parse.urlunsplit(('', '', splitPath.path + '/', splitPath.query, ''))
                    self.send_header("Location", location)
                    self.send_header("Content-Length", "0")
                    self.end_headers()
                    return None

                indexPath = join_path(split_path(path) + ['index.html'])
                try:
                    indexInfo = self.mountSource.stat(indexPath)
                except NOT_FOUND_ERRORS:
                    return self.list_directory(path)
                if not indexInfo.is_file():
                    return self.list_directory(path)
                path, fileInfo = indexPath, indexInfo

            return self._send_file_head(path, fileInfo)
        except Exception as exception:
            self._send_exception(exception)
        return None

    def _is_not_modified(self, fileInfo: FileInfo) -> bool:
        if "If-Modified-Since" not in self.headers or "If-None-Match" in self.headers or not fileInfo.mtime:
            return False

        try:
            since = email.utils.parsedate_to_datetime(self.headers["If-Modified-Since"])
        except (TypeError, IndexError, OverflowError, ValueError):
            return False
        if since is None:
            return False
        if since.tzinfo is None:
            since = since.replace(tzinfo=datetime.timezone.utc)

        modified = datetime.datetime.fromtimestamp(fileInfo.mtime, datetime.timezone.utc).replace(microsecond=0)
        return modified <= since

    def _send_file_head(self, path: str, fileInfo: FileInfo) -> Optional[IO[bytes]]:
        if "Range" not in self.headers and self._is_not_modified(fileInfo):
            self.send_response(HTTPStatus.NOT_MODIFIED)
            self.end_headers()
            return None

        byteRange = None
        if "Range" in self.headers:
            try:
                byteRange = parse_byte_range(self.headers["Range"], fileInfo.size)
            except ValueError:
                self.send_response(HTTPStatus.REQUESTED_RANGE_NOT_SATISFIABLE)
                self.send_header("Content-Range", f"bytes */{fileInfo.size}")
                self.send_header("Content-Length", "0")
                self.end_headers()
                return None

        # Opening may still fail, e.g., for corrupted archive members. Do it before sending anything.
        file = self.mountSource.open(path)
        try:
            if byteRange:
                start, end = byteRange
                file.seek(start)
                self._remainingSize = end - start + 1
                self.send_response(HTTPStatus.PARTIAL_CONTENT)
                self.send_header("Content-Range", f"bytes {start}-{end}/{fileInfo.size}")
            else:
                self._remainingSize = fileInfo.size
                self.send_response(HTTPStatus.OK)

            self.send_header("Content-Type", self.guess_type(path))
            self.send_header("Content-Length", str(self._remainingSize))
            self.send_header("Accept-Ranges", "bytes")
            if fileInfo.mtime:
                self.send_header("Last-Modified", self.date_time_string(int(fileInfo.mtime)))
            self.end_headers()
        except Exception:
            file.close()
            raise
        return file

    def guess_type(self, path):
        guess, _ = mimetypes.guess_type(str(path))
        return guess or 'application/octet-stream'

    def list_directory(self, path: str) -> Optional[IO[bytes]]:
        """Sends the headers for a HTML listing of the given folder and returns the body as file object."""
        try:
            fileInfos = self.mountSource.list(path)
        except Exception as exception:
            self._send_exception(exception)
            return None

        enc = sys.getfilesystemencoding()
        displayPath = html.escape(path, quote=False)
        title = f'Directory listing for {displayPath}'
        lines = [
            '<!DOCTYPE HTML>',
            '<html lang="en">',
            '<head>',
            f'<meta charset="{enc}">',
            f'<title>{title}</title>\n</head>',
            f'<body>\n<h1>{title}</h1>',
            '<hr>\n<ul>',
        ]
        for fileInfo in fileInfos:
            displayName = linkName = fileInfo.name
            if fileInfo.is_dir():
                displayName = fileInfo.name + "/"
                linkName = fileInfo.name + "/"
            if fileInfo.is_symlink():
                displayName = fileInfo.name + "@"
            lines.append(
                '<li><a href="%s">%s</a></li>'
                % (urllib.parse.quote(linkName, errors='surrogatepass'), html.escape(displayName, quote=False))
            )
        lines.append('</ul>\n<hr>\n</body>\n</html>\n')
        encoded = '\n'.join(lines).encode(enc, 'surrogateescape')

        self._remainingSize = len(encoded)
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-type", f"text/html; charset={enc}")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        return io.BytesIO(encoded)


def create_server(mountSource: MountSource, port: int = 8080, bind: str = '') -> ThreadingHTTPServer:
    """Creates a server handling each request in its own thread. Call serve_forever on it to start serving."""
    handler = functools.partial(MountSourceRequestHandler, mountSource=mountSource)
    return ThreadingHTTPServer((bind, port), handler)


def serve(root: str, port: int = 8080, bind: str = '') -> None:
    with AutoMountLayer(FolderMountSource(root)) as mountSource, create_server(mountSource, port, bind) as httpd:
        host, boundPort = httpd.server_address[:2]
        logger.info("Serving %s on http://%s:%s/", root, host, boundPort)
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info("Stopped serving %s.", root)
