#!/usr/bin/env python
"""Main entry point for the knawledge catalog."""
import argparse
import atexit
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import List, Optional

import anyio

from knawledge.config import config, parse_directories
from knawledge.exceptions import ConfigurationError, KnawledgeError
from knawledge.models.db_models import init_db
from knawledge.observability import configure_logging, metrics
from knawledge.services.document_service import DocumentService
from knawledge.storage.catalog_store import CatalogStore


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="knawledge markdown catalog")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("KNAWLEDGE_DATABASE_PATH")
    )
    parser.add_argument(
        "--directory",
        help="Root to mirror, as ALIAS=PATH (repeatable, replaces KNAWLEDGE_DIRECTORIES)",
        action="append",
        default=[],
        metavar="ALIAS=PATH",
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("KNAWLEDGE_LOG_LEVEL", "INFO")
    )
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("serve", help="Run the MCP server over stdio (default)")
    commands.add_parser("sync", help="Run one synchronization pass")
    read = commands.add_parser("read", help="Print a document by ID or custom id")
    read.add_argument("identifier")
    tree = commands.add_parser("tree", help="List the roots, or one directory's entries")
    tree.add_argument("directory_id", nargs="?")

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "serve"
    return args


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
        config.database_url = None
    if args.directory:
        try:
            config.directories = parse_directories(",".join(args.directory))
        except ValueError as e:
            raise ConfigurationError(str(e), config_key="directory") from e


def _save_metrics_on_exit():
    """Save metrics to disk on shutdown."""
    try:
        if metrics.save_metrics():
            logging.getLogger(__name__).info("Metrics saved to disk on shutdown")
    except OSError as e:
        logging.getLogger(__name__).warning(f"Failed to save metrics on shutdown: {e}")


async def _sync(service: DocumentService) -> int:
    report = await service.sync()
    print(f"documents added:     {report.documents_added}")
    print(f"directories added:   {report.directories_added}")
    print(f"documents trimmed:   {report.documents_trimmed}")
    print(f"directories trimmed: {report.directories_trimmed}")
    print(f"roots trimmed:       {report.roots_trimmed}")
    for alias in report.skipped_roots:
        print(f"skipped (unresolvable): {alias}")
    return 0


async def _read(service: DocumentService, identifier: str) -> int:
    document = await service.read_file(identifier)
    print(document.content)
    return 0


async def _tree(service: DocumentService, directory_id: Optional[str]) -> int:
    if directory_id is None:
        entries = await service.list_roots_with_entries()
    else:
        try:
            parsed = uuid.UUID(directory_id)
        except ValueError:
            print(f"Invalid directory id: {directory_id}", file=sys.stderr)
            return 2
        entries = await service.list_entries(parsed)
    for entry in entries:
        marker = "/" if entry.is_directory else ""
        label = entry.title or entry.name
        parent = str(entry.parent) if entry.parent else "-"
        print(f"{entry.id}  {parent:36}  {label}{marker}")
    return 0


def main(argv: Optional[List[str]] = None):
    """Run the knawledge command line."""
    # Parse arguments and update config
    args = parse_args(argv)
    try:
        update_config(args)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(2)

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    atexit.register(_save_metrics_on_exit)

    # Initialize database schema, single engine shared by every component
    try:
        logger.info(f"Using database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    if args.command == "serve":
        from knawledge.server.mcp_server import KnawledgeMcpServer

        try:
            logger.info("Starting knawledge MCP server")
            server = KnawledgeMcpServer(engine=engine)
            server.run()
        except Exception as e:
            logger.error(f"Error running server: {e}")
            sys.exit(1)
        return

    service = DocumentService(
        CatalogStore(engine=engine),
        title=config.title,
        directories=config.directories,
    )
    try:
        if args.command == "sync":
            code = anyio.run(_sync, service)
        elif args.command == "read":
            code = anyio.run(_read, service, args.identifier)
        else:
            code = anyio.run(_tree, service, args.directory_id)
    except KnawledgeError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
