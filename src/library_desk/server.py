"""Library Desk MCP Server

Exposes the library desk to MCP clients over stdio. Every tool acts on behalf
of the user whose bearer token it carries; obtain one with the ``login`` tool.

The server owns process-wide wiring only:
- logging (stderr, stdout carries the protocol)
- observability (logfire)
- the ``DatabaseManager`` and the ``LibraryDesk`` built on it
- tool registration
"""

import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from fastmcp import FastMCP

from .config import DeskConfig, get_config
from .desk import LibraryDesk
from .observability import initialize_observability
from .tools import all_tools

logger = logging.getLogger(__name__)

ToolHandler = Callable[[LibraryDesk, dict[str, Any]], Awaitable[dict[str, Any]]]


def configure_logging(config: DeskConfig) -> None:
    """Send logs to stderr to keep stdout clean for the stdio transport."""
    level = logging.DEBUG if config.debug else getattr(logging, config.log_level)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )
    if not config.is_development:
        logging.getLogger("fastmcp").setLevel(logging.WARNING)


def _bind(handler: ToolHandler, desk: LibraryDesk) -> Callable[[dict[str, Any]], Awaitable[dict]]:
    async def tool_fn(arguments: dict[str, Any]) -> dict[str, Any]:
        return await handler(desk, arguments)

    tool_fn.__name__ = handler.__name__.removesuffix("_handler")
    tool_fn.__doc__ = handler.__doc__
    return tool_fn


def build_server(config: DeskConfig, desk: LibraryDesk | None = None) -> FastMCP:
    """Create the FastMCP server with every tool bound to ``desk``."""
    desk = desk or LibraryDesk.from_config(config)

    mcp = FastMCP(
        name=config.server_name,
        version=config.server_version,
        instructions=(
            "Library Desk - a library management backend. Log in to obtain a token, "
            "then pass it to every other tool. Members request books and pay fines; "
            "librarians approve requests, issue and return books; admins see the dashboard."
        ),
    )

    for tool in all_tools:
        logger.debug("Registering tool: %s", tool["name"])
        try:
            mcp.tool(
                name=tool["name"],
                description=tool["description"],
            )(_bind(tool["handler"], desk))
        except Exception:
            logger.exception("Failed to register tool %s", tool["name"])
            raise

    logger.info("Registered %d tools", len(all_tools))
    return mcp


def run_stdio_server(config: DeskConfig) -> None:
    logger.info("Starting %s v%s on stdio transport", config.server_name, config.server_version)

    desk = LibraryDesk.from_config(config)
    desk.db.init_database()
    if not desk.db.verify_connection():
        logger.error("Database %s is not reachable", config.database_url)
        sys.exit(1)

    mcp = build_server(config, desk)

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        desk.db.close()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        logger.info("MCP Server ready and waiting for connections...")
        mcp.run(transport="stdio")
    except Exception:
        logger.exception("Fatal error in MCP server")
        sys.exit(1)
    finally:
        desk.db.close()


def main() -> None:
    """Entry point for ``library-desk`` and ``python -m library_desk.server``."""
    config = get_config()
    configure_logging(config)
    initialize_observability()

    try:
        logger.info("=" * 60)
        logger.info("Library Desk MCP Server")
        logger.info("Version: %s", config.server_version)
        logger.info("Transport: %s", config.transport)
        logger.info("Debug Mode: %s", config.debug)
        logger.info("=" * 60)

        if config.transport == "stdio":
            run_stdio_server(config)
        else:
            logger.error("Unsupported transport: %s", config.transport)
            sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Failed to start MCP server")
        sys.exit(1)


if __name__ == "__main__":
    main()
