import os
import logging

from flask import Response, request, send_file

log = logging.getLogger(__name__)


class VideoOpenError(OSError):
    """A catalogued file could not be opened for streaming."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        super().__init__(f"Failed to open file {path}: {reason}" if reason else f"Failed to open file {path}")


def open_video(path: str) -> int:
    """Check that ``path`` can be opened for reading and return its size."""
    try:
        with open(path, "rb") as f:
            return os.fstat(f.fileno()).st_size
    except OSError as exc:
        raise VideoOpenError(path, exc.strerror or str(exc)) from exc


def stream_video(path: str, content_type: str) -> Response:
    """
    Stream ``path`` as ``content_type`` for the current request.

    Range, If-Range and If-Modified-Since are handled by send_file.
    Raises VideoOpenError if the file can't be opened.
    """
    size = open_video(path)
    log.debug("Streaming %s (%d bytes) as %s", path, size, content_type)

    # a Range header that isn't a valid byte range is ignored, not a 416
    if "Range" in request.headers and (request.range is None or request.range.units != "bytes"):
        log.debug("Ignoring malformed Range header: %s", request.headers["Range"])
        request.environ.pop("HTTP_RANGE", None)

    # relative paths would be resolved against the app root, not the cwd
    return send_file(os.path.abspath(path), mimetype=content_type, conditional=True)
