"""Utility functions for the knawledge catalog."""
import os
from typing import Optional

DOCUMENT_SUFFIX = ".md"


def canonicalize_path(path: str) -> Optional[str]:
    """Resolve ``path`` to its canonical absolute form.

    ``~`` is expanded and symlinks are resolved.

    Returns:
        The canonical path, or None if it does not exist or cannot be
        resolved.
    """
    try:
        resolved = os.path.realpath(os.path.expanduser(path), strict=True)
    except (OSError, ValueError):
        return None
    return resolved


def is_hidden(name: str) -> bool:
    """Whether a directory entry is hidden (dotfile/dotdir)."""
    return name.startswith(".")


def is_document(name: str) -> bool:
    """Whether a file name denotes a markdown document."""
    return name.lower().endswith(DOCUMENT_SUFFIX) and not is_hidden(name)
