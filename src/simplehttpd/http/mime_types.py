"""
=============================================================================
MIME TYPES
=============================================================================

The content-type vocabulary used by the response writer.

Handlers name the type of their body with a MimeType member:

    write_response(conn, HTTPStatus.OK, '{"id": 42}', MimeType.APPLICATION_JSON)

and the writer turns it into the Content-Type header value through
content_type_for(). Anything outside the vocabulary is sent as text/plain.

=============================================================================
"""

from enum import Enum
from typing import Union


class MimeType(str, Enum):
    """Media types the server knows how to label."""

    # ─────────────────────────────────────────────────────────────────────
    # TEXT
    # ─────────────────────────────────────────────────────────────────────
    TEXT_PLAIN = "text/plain"
    TEXT_HTML = "text/html"
    TEXT_CSS = "text/css"
    TEXT_CSV = "text/csv"
    TEXT_JAVASCRIPT = "text/javascript"
    TEXT_MARKDOWN = "text/markdown"
    TEXT_XML = "text/xml"

    # ─────────────────────────────────────────────────────────────────────
    # APPLICATION
    # ─────────────────────────────────────────────────────────────────────
    APPLICATION_JSON = "application/json"
    APPLICATION_XML = "application/xml"
    APPLICATION_JAVASCRIPT = "application/javascript"
    APPLICATION_OCTET_STREAM = "application/octet-stream"
    APPLICATION_PDF = "application/pdf"
    APPLICATION_ZIP = "application/zip"
    APPLICATION_GZIP = "application/gzip"
    APPLICATION_TAR = "application/x-tar"
    APPLICATION_WASM = "application/wasm"
    APPLICATION_FORM_URLENCODED = "application/x-www-form-urlencoded"
    MULTIPART_FORM_DATA = "multipart/form-data"

    # ─────────────────────────────────────────────────────────────────────
    # IMAGE
    # ─────────────────────────────────────────────────────────────────────
    IMAGE_PNG = "image/png"
    IMAGE_JPEG = "image/jpeg"
    IMAGE_GIF = "image/gif"
    IMAGE_SVG = "image/svg+xml"
    IMAGE_WEBP = "image/webp"
    IMAGE_ICON = "image/x-icon"
    IMAGE_BMP = "image/bmp"

    # ─────────────────────────────────────────────────────────────────────
    # AUDIO / VIDEO
    # ─────────────────────────────────────────────────────────────────────
    AUDIO_MPEG = "audio/mpeg"
    AUDIO_WAV = "audio/wav"
    AUDIO_OGG = "audio/ogg"
    VIDEO_MP4 = "video/mp4"
    VIDEO_WEBM = "video/webm"

    # ─────────────────────────────────────────────────────────────────────
    # FONTS
    # ─────────────────────────────────────────────────────────────────────
    FONT_WOFF = "font/woff"
    FONT_WOFF2 = "font/woff2"
    FONT_TTF = "font/ttf"


DEFAULT_CONTENT_TYPE = MimeType.TEXT_PLAIN.value

_BY_VALUE = {member.value: member for member in MimeType}


def content_type_for(mime: Union[MimeType, str, None]) -> str:
    """
    Get the Content-Type header value for a media type.

    Accepts a MimeType member or its wire string. Parameters such as
    "; charset=utf-8" are dropped. Strings that are not part of the
    vocabulary, and None, fall back to text/plain.

    Examples:
        >>> content_type_for(MimeType.APPLICATION_JSON)
        'application/json'
        >>> content_type_for("image/png")
        'image/png'
        >>> content_type_for("text/html; charset=utf-8")
        'text/html'
        >>> content_type_for("application/x-made-up")
        'text/plain'
    """
    if isinstance(mime, MimeType):
        return mime.value
    if isinstance(mime, str):
        member = _BY_VALUE.get(mime.split(";", 1)[0].strip().lower())
        if member is not None:
            return member.value
    return DEFAULT_CONTENT_TYPE
