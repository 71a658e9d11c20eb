"""Removal of whole-line and trailing line comments from text data."""

from __future__ import annotations

COMMENT_HASH = b"#"
COMMENT_SLASHES = b"//"

_BLANKS = b" \t"
_QUOTE = b'"'


def _strip_line(line: bytes, comments: bytes) -> bytes | None:
    """Return the line without its comment, or None if the line is dropped."""
    stripped = line.lstrip(_BLANKS)
    if not stripped or stripped.startswith(comments):
        return None

    index = line.find(comments)
    if index == -1:
        return line

    if _QUOTE not in line[index:]:
        return line[:index].rstrip(_BLANKS)

    if line[:index].count(_QUOTE) % 2 == 0:
        # The marker sits outside any string; a quote only follows in the comment.
        return line[:index].rstrip(_BLANKS)

    # The marker is inside a string literal.
    return line


def remove_line_comments(data: bytes, comments: bytes) -> bytes:
    """Drop blank lines and lines starting with ``comments``, and cut trailing comments.

    Every kept line is terminated by a newline.
    """
    kept = (_strip_line(line, comments) for line in data.split(b"\n"))
    return b"".join(line + b"\n" for line in kept if line is not None)