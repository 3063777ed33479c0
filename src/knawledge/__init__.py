"""
knawledge - a catalog of markdown notes mirrored from directories on disk.
The catalog tracks directories and documents in a relational database so that
notes can be browsed hierarchically and resolved by a stable identifier or by
a user-chosen custom id, independent of where the file lives.

This version uses asynchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("knawledge")
except PackageNotFoundError:
    __version__ = "0.3.0"
