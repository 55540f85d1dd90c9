"""Input sanitization for user-supplied text and file names."""

import re

_ANGLE_BRACKETS = re.compile(r"[<>]")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)
_UNSAFE_FILE_CHARS = re.compile(r"[^a-zA-Z0-9\-_.]")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")

MAX_INPUT_CHARS = 1000
MAX_FILE_NAME_CHARS = 255


def sanitize_input(value: str) -> str:
    """Strip markup-ish fragments from free text and cap its length."""
    value = value.strip()
    value = _ANGLE_BRACKETS.sub("", value)
    value = _JS_PROTOCOL.sub("", value)
    value = _EVENT_HANDLER.sub("", value)
    return value[:MAX_INPUT_CHARS]


def sanitize_file_name(file_name: str) -> str:
    """Reduce a file name to ``[A-Za-z0-9-_.]``, collapsing runs of underscores.

    Path separators become underscores, so the result is always a single
    path component.
    """
    cleaned = _UNSAFE_FILE_CHARS.sub("_", file_name)
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned)
    cleaned = cleaned[:MAX_FILE_NAME_CHARS]
    # "." and ".." survive the character filter but are not file names
    if cleaned.strip(".") == "":
        return "upload"
    return cleaned
