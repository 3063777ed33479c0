"""Storage layer for the knawledge catalog."""

from knawledge.storage.catalog_store import CatalogStore
from knawledge.storage.markdown_parser import MarkdownParser
from knawledge.storage.walker import process_root_directory

__all__ = [
    "CatalogStore",
    "MarkdownParser",
    "process_root_directory",
]
