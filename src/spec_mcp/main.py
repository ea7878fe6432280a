"""Main entry point for the specmcp MCP server and dashboard API."""

import argparse
import logging
import sys

import uvicorn
from fastmcp import FastMCP

from spec_mcp.api import create_app
from spec_mcp.auth import get_auth_provider
from spec_mcp.config import Config
from spec_mcp.errors import IntegrityError
from spec_mcp.resources import register_resources
from spec_mcp.search import create_search_service
from spec_mcp.specs import SpecService
from spec_mcp.store import open_store
from spec_mcp.tools import register_tools
from spec_mcp.tools_write import register_tools_write

logger = logging.getLogger(__name__)


def create_server(config: Config) -> FastMCP:
    """Create and configure the MCP server with all components.

    Args:
        config: Configuration instance with all settings.
    """
    auth_provider = get_auth_provider(config)

    mcp = FastMCP(
        name="specmcp",
        instructions=(
            "specmcp manages specification documents: each spec has a title, a "
            "markdown body, a status (draft, todo, in-progress, done), todos and "
            "execution and issue logs. Use search_specs to find specs by content, "
            "get_spec to read one, and the write tools to create and update them."
        ),
        auth=auth_provider,
    )

    logger.info("Opening %s store", config.storage)
    store = open_store(config)
    search = create_search_service(store)
    specs = SpecService(
        store,
        enforce_version=config.enforce_version,
        max_body_size=config.max_body_size,
    )

    try:
        search.ensure_integrity()
    except IntegrityError as e:
        logger.warning("%s; run with --reindex to rebuild the search index", e)

    logger.info("Registering resources...")
    register_resources(mcp, specs)

    logger.info("Registering read tools...")
    register_tools(mcp, specs, search)

    logger.info("Registering write tools...")
    register_tools_write(mcp, config, specs, search)

    logger.info("Server configured successfully")
    return mcp


def reindex(config: Config) -> int:
    """Rebuild the search index of the configured store and close it again."""
    store = open_store(config)
    try:
        return create_search_service(store).rebuild()
    finally:
        store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="specmcp", description="specmcp - MCP server for specification documents"
    )
    parser.add_argument(
        "--reindex",
        action="store_true",
        help="Rebuild the search index before starting",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Run in read-only mode (reject write tools and endpoints)",
    )
    parser.add_argument(
        "--transport",
        choices=("sse", "stdio"),
        default="sse",
        help="MCP transport (default: sse)",
    )
    parser.add_argument(
        "--dashboard",
        action="store_true",
        help="Run the REST/WebSocket dashboard API instead of the MCP server",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main function - starts the MCP server or the dashboard API."""
    # Configure logging here to avoid side effects on import
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    args = build_parser().parse_args(argv)

    # CLI flag overrides env var
    try:
        config = Config.from_env(read_only_override=True if args.read_only else None)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(2)
    logging.getLogger().setLevel(config.log_level)

    logger.info("=" * 50)
    logger.info("specmcp starting...")
    logger.info("  STORAGE:   %s", config.storage)
    if config.storage == "file":
        logger.info("  DOCS_DIR:  %s", config.docs_dir)
    else:
        logger.info("  DB:        %s", config.spec_db)
    logger.info("  MODE:      %s", "dashboard" if args.dashboard else f"mcp ({args.transport})")
    logger.info("  PORT:      %s", config.api_port if args.dashboard else config.mcp_port)
    logger.info("  AUTH:      %s", "enabled" if config.auth_token else "disabled")
    logger.info("  READ_ONLY: %s", config.read_only)
    logger.info("  VERSIONS:  %s", "enforced" if config.enforce_version else "advisory")
    logger.info("=" * 50)

    try:
        if args.reindex:
            logger.info("Reindex requested...")
            count = reindex(config)
            logger.info("Reindex complete: %d specs indexed", count)

        if args.dashboard:
            logger.info("Starting dashboard API on port %s...", config.api_port)
            uvicorn.run(
                create_app(config),
                host="0.0.0.0",
                port=config.api_port,
                log_level=config.log_level.lower(),
            )
        else:
            mcp = create_server(config)
            if args.transport == "stdio":
                logger.info("Starting MCP server on stdio...")
                mcp.run(transport="stdio")
            else:
                logger.info("Starting MCP server on port %s...", config.mcp_port)
                mcp.run(transport="sse", host="0.0.0.0", port=config.mcp_port)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        sys.exit(0)
    except Exception:
        logger.exception("Server error")
        sys.exit(1)


if __name__ == "__main__":
    main()
