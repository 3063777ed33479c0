"""MCP server exposing the knawledge catalog."""

import json
import logging
import uuid
from typing import Any, List, Optional

import anyio
from mcp.server.fastmcp import FastMCP

from knawledge.config import config
from knawledge.exceptions import DocumentNotFoundError, KnawledgeError
from knawledge.models.schema import DirectoryEntry, DocumentData
from knawledge.observability import metrics
from knawledge.services.document_service import DocumentService
from knawledge.services.sync_scheduler import SyncScheduler
from knawledge.storage.catalog_store import CatalogStore

logger = logging.getLogger(__name__)


def _format_entries(entries: List[DirectoryEntry]) -> str:
    return json.dumps([e.model_dump(mode="json") for e in entries], indent=2)


def _format_document(document: DocumentData, format: str) -> str:
    if format == "markdown":
        return document.content
    meta = document.meta
    lines = [
        f"# {meta.title or '(untitled)'}",
        f"ID: {document.id}",
    ]
    if meta.custom_id:
        lines.append(f"Custom ID: {meta.custom_id}")
    if meta.tags:
        lines.append(f"Tags: {', '.join(meta.tags)}")
    lines.append("")
    lines.append(document.content)
    return "\n".join(lines)


class KnawledgeMcpServer:
    """MCP server for the knawledge catalog."""

    def __init__(self, engine=None):
        """Initialize the MCP server.

        Args:
            engine: Pre-configured SQLAlchemy engine shared by the catalog.
                    When None, the catalog creates one from config.
        """
        self.mcp = FastMCP(config.server_name)
        self.store = CatalogStore(engine=engine)
        self.document_service = DocumentService(
            self.store,
            title=config.title,
            directories=config.directories,
        )
        self.scheduler: Optional[SyncScheduler] = (
            SyncScheduler(self.document_service, config.sync_interval)
            if config.sync_interval > 0
            else None
        )
        self._register_tools()
        logger.info("knawledge MCP server initialized")

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, DocumentNotFoundError):
            return f"Document not found: {error.identifier}"
        if isinstance(error, KnawledgeError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        elif isinstance(error, (IOError, OSError)):
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="kn_sync")
        async def kn_sync() -> str:
            """Synchronize the catalog with the configured directories on disk."""
            try:
                report = await self.document_service.sync()
                lines = [
                    "Sync complete.",
                    f"Documents added: {report.documents_added}",
                    f"Directories added: {report.directories_added}",
                    f"Documents trimmed: {report.documents_trimmed}",
                    f"Directories trimmed: {report.directories_trimmed}",
                    f"Roots trimmed: {report.roots_trimmed}",
                ]
                if report.skipped_roots:
                    lines.append(f"Unresolvable roots: {', '.join(report.skipped_roots)}")
                return "\n".join(lines)
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="kn_read_document")
        async def kn_read_document(identifier: str, format: str = "summary") -> str:
            """Read a document by its ID or by the custom id set in its front matter.
            Args:
                identifier: Document UUID or custom id
                format: "summary" (default) for metadata plus body, "markdown" for the body only
            """
            try:
                document = await self.document_service.read_file(identifier)
                return _format_document(document, format)
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="kn_get_document_meta")
        async def kn_get_document_meta(document_id: str) -> str:
            """Get a document's front matter metadata by its UUID.
            Args:
                document_id: Document UUID (custom ids are not accepted here)
            """
            try:
                meta = await self.document_service.get_file_meta(uuid.UUID(document_id))
                return meta.model_dump_json(indent=2)
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="kn_get_index")
        async def kn_get_index(format: str = "markdown") -> str:
            """Read the catalog's index.md.
            Args:
                format: "markdown" (default) for the body only, "summary" for metadata plus body
            """
            try:
                document = await self.document_service.get_index()
                return _format_document(document, format)
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="kn_list_roots")
        async def kn_list_roots() -> str:
            """List every root directory with the entries directly inside it."""
            try:
                return _format_entries(await self.document_service.list_roots_with_entries())
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="kn_list_directory")
        async def kn_list_directory(directory_id: str) -> str:
            """List the documents and subdirectories directly inside a directory.
            Args:
                directory_id: Directory UUID, as returned by kn_list_roots
            """
            try:
                entries = await self.document_service.list_entries(uuid.UUID(directory_id))
                return _format_entries(entries)
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="kn_list_aliases")
        async def kn_list_aliases() -> str:
            """List the configured root aliases and their paths."""
            try:
                directories = await self.document_service.list_directories()
                if not directories:
                    return "No directories configured."
                return "\n".join(f"{alias}: {path}" for alias, path in sorted(directories.items()))
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="kn_set_alias")
        async def kn_set_alias(alias: str, path: str) -> str:
            """Mirror a directory under an alias (applied on the next sync).
            Args:
                alias: Display name of the root
                path: Directory path on disk
            """
            try:
                await self.document_service.set_directory(alias, path)
                return f"Alias '{alias}' now points to {path}. Run kn_sync to apply."
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="kn_remove_alias")
        async def kn_remove_alias(alias: str) -> str:
            """Stop mirroring the directory configured under an alias.
            Args:
                alias: Display name of the root
            """
            try:
                if await self.document_service.remove_directory(alias):
                    return f"Alias '{alias}' removed. Run kn_sync to drop it from the catalog."
                return f"Alias '{alias}' is not configured."
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="kn_status")
        async def kn_status() -> str:
            """Show catalog configuration and operation metrics."""
            try:
                status: dict[str, Any] = {
                    "title": self.document_service.title,
                    "directories": await self.document_service.list_directories(),
                    "sync_interval": config.sync_interval,
                    "metrics": metrics.get_summary(),
                }
                if self.scheduler is not None:
                    status["background_passes"] = self.scheduler.passes
                    status["background_failures"] = self.scheduler.failures
                return json.dumps(status, indent=2, default=str)
            except Exception as e:
                return self.format_error_response(e)

    async def run_async(self) -> None:
        """Serve over stdio, with background sync when enabled."""
        async with anyio.create_task_group() as tg:
            if self.scheduler is not None:
                tg.start_soon(self.scheduler.run)
            await self.mcp.run_stdio_async()
            tg.cancel_scope.cancel()

    def run(self) -> None:
        """Run the MCP server."""
        anyio.run(self.run_async)
