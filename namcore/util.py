"""Small helpers shared across the package."""

from __future__ import annotations

import string

__all__ = ["lowercase", "VERSION_MAJOR", "VERSION_MINOR", "VERSION_PATCH"]

VERSION_MAJOR = 0
VERSION_MINOR = 3
VERSION_PATCH = 0

_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def lowercase(s):
    """Lower-case the ASCII letters of ``s``; other characters are kept."""
    return s.translate(_ASCII_LOWER)