"""Audio MIME type inference and file name sanitizing."""

import logging
import re

logger = logging.getLogger(__name__)

DEFAULT_AUDIO_MIME_TYPE = "audio/webm"

AUDIO_MIME_TYPES: dict[str, str] = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "webm": "audio/webm",
}

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def get_mime_type(filename: str) -> str:
    """Infer an audio MIME type from a file name or blob key.

    Unknown or missing extensions fall back to ``audio/webm``, the format
    the journal recorder produces.
    """
    _, dot, extension = filename.rpartition(".")
    extension = extension.lower() if dot else ""
    mime_type = AUDIO_MIME_TYPES.get(extension)
    if mime_type is None:
        logger.debug("Using default MIME type for extension %r", extension)
        return DEFAULT_AUDIO_MIME_TYPE
    return mime_type


def sanitize_file_name(filename: str) -> str:
    """Replace every character outside ``[a-zA-Z0-9.-]`` with ``_``."""
    return _UNSAFE_CHARS.sub("_", filename)
