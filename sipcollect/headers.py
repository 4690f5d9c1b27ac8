"""Helpers for pulling header values out of SIP message text."""

from __future__ import annotations

MAX_VALUE_LENGTH = 1020
_MAX_LEADING_SPACES = 3


def _fold(char: str) -> str:
    """Lower-case ASCII letters only, leaving every other character alone."""
    if "A" <= char <= "Z":
        return chr(ord(char) + 32)
    return char


def extract_header(text: str, needle: str) -> str:
    """Return the value of the header named by ``needle`` in ``text``.

    ``needle`` names the header including its leading line break and colon,
    for example ``"\\nCall-ID:"``. A header only matches at the start of a
    line (right after a ``"\\n"``), and letters are compared without regard
    to ASCII case. Up to three spaces after the colon are skipped, and the
    value runs to the end of the line, capped at 1020 characters. An empty
    string is returned when the header is not present.
    """
    text_len = len(text)
    needle_len = len(needle)
    if text_len <= needle_len:
        return ""

    wanted = [_fold(char) for char in needle[1:]]
    for line_break in range(text_len - needle_len - 1):
        if text[line_break] != "\n":
            continue
        candidate = text[line_break + 1:line_break + needle_len]
        if [_fold(char) for char in candidate] != wanted:
            continue

        start = line_break + needle_len
        for _ in range(_MAX_LEADING_SPACES):
            if start < text_len and text[start] == " ":
                start += 1
            else:
                break

        end = start
        limit = min(text_len, start + MAX_VALUE_LENGTH)
        while end < limit and text[end] not in "\r\n":
            end += 1
        return text[start:end]
    return ""


def ascii_only(data: bytes) -> str:
    """Drop every byte outside the 7-bit ASCII range and stop at the first NUL."""
    kept = bytes(byte for byte in data if byte < 128)
    return kept.split(b"\x00", 1)[0].decode("ascii")