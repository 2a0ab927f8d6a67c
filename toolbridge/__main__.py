"""
toolbridge CLI entry point.

Provides an interactive chat loop, one-shot questions, tool listing, and the
HTTP API server.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from toolbridge import __version__
from toolbridge.config.logging import get_logger, setup_logging
from toolbridge.config.settings import Settings, load_settings
from toolbridge.errors import ToolHostConnectionError
from toolbridge.session import Session

QUIT_COMMANDS = {"quit", "exit"}
RESET_COMMAND = "reset"


def _add_server_arguments(parser: argparse.ArgumentParser, positional: bool = True) -> None:
    if positional:
        parser.add_argument(
            "server",
            nargs="?",
            default=None,
            help="Server name from the config file, 'default', or a server script path "
                 "when no config file is given (default: MCP__SERVER from config)",
        )
    else:
        parser.add_argument(
            "--server",
            default=None,
            help="Server name from the config file, 'default', or a server script path",
        )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the MCP server config file (default: MCP__CONFIG_PATH)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="toolbridge",
        description="Chat with a language model that can call MCP server tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"toolbridge {__version__}",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: .env in current directory)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level from config",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    chat_parser = subparsers.add_parser(
        "chat",
        help="Start an interactive chat session",
    )
    _add_server_arguments(chat_parser)

    ask_parser = subparsers.add_parser(
        "ask",
        help="Ask a single question and print the reply",
    )
    ask_parser.add_argument(
        "question",
        help='Question to ask, e.g. "What files are in my home directory?"',
    )
    _add_server_arguments(ask_parser, positional=False)
    ask_parser.add_argument(
        "--show-tools",
        action="store_true",
        help="Print a summary of the tool calls made while answering",
    )

    tools_parser = subparsers.add_parser(
        "tools",
        help="List the tools offered by a server (after schema normalization)",
    )
    _add_server_arguments(tools_parser)
    tools_parser.add_argument(
        "--schemas",
        action="store_true",
        help="Print each tool's normalized parameter schema",
    )

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP API server",
    )
    serve_parser.add_argument("--host", default=None, help="Bind address (default: API__HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port (default: API__PORT)")
    _add_server_arguments(serve_parser, positional=False)

    subparsers.add_parser(
        "config",
        help="Show current configuration",
    )

    return parser


def _apply_server_overrides(args, settings: Settings) -> Settings:
    """Return settings with --server/--config (or the positional server) applied."""
    update = {}
    if getattr(args, "server", None):
        update["server"] = args.server
    if getattr(args, "config", None):
        update["config_path"] = args.config
    if update:
        settings = settings.model_copy(update={"mcp": settings.mcp.model_copy(update=update)})
    return settings


def cmd_config(settings: Settings) -> int:
    """Show current configuration."""
    logger = get_logger(__name__)

    logger.info("\n=== toolbridge Configuration ===\n")
    logger.info(f"Log Level: {settings.log_level}")
    logger.info(f"Log File: {settings.log_file or 'None (console only)'}")
    logger.info(f"\nLLM Model: {settings.llm.model}")
    logger.info(f"LLM API Key: {'Set' if settings.llm.api_key else 'Not set'}")
    logger.info(f"LLM API Base: {settings.llm.api_base or 'provider default'}")
    logger.info(f"\nMCP Server: {settings.mcp.server}")
    logger.info(f"MCP Config File: {settings.mcp.config_path or 'None (script path mode)'}")
    logger.info(f"\nTrace Files: {'enabled' if settings.trace.enabled else 'disabled'}")
    logger.info(f"Trace Directory: {settings.trace.directory}")
    logger.info(f"\nAPI Bind: {settings.api.host}:{settings.api.port}")

    return 0


async def _connect(session: Session, settings: Settings) -> bool:
    logger = get_logger(__name__)
    try:
        await session.connect(settings.mcp.server, settings.mcp.config_path)
    except ToolHostConnectionError as e:
        logger.error(f"Connection failed: {e}")
        return False
    return True


async def cmd_chat(settings: Settings) -> int:
    """
    Interactive chat loop.

    Reads questions from stdin until 'quit'. 'reset' clears the conversation.
    """
    async with Session(settings) as session:
        if not await _connect(session, settings):
            return 1

        print("\n===============================")
        print("  toolbridge chat started!")
        print(f"  Model: {session.model}")
        print(f"  Server: {session.server_name}")
        print(f"  Tools: {', '.join(session.tools.names()) or 'none'}")
        print("  Type your question, 'reset' to clear history, or 'quit' to exit")
        print("===============================\n")

        while True:
            try:
                message = await asyncio.to_thread(input, "\nQuery: ")
            except EOFError:
                break

            command = message.strip().lower()
            if command in QUIT_COMMANDS:
                print("Goodbye!")
                break
            if not command:
                print("Please enter a question")
                continue
            if command == RESET_COMMAND:
                session.reset()
                print("Conversation history cleared")
                continue

            print("\nThinking...")
            reply = await session.ask(message)
            print("\nAnswer:")
            print(reply)

    return 0


async def cmd_ask(args, settings: Settings) -> int:
    """Ask one question, print the reply, and exit."""
    if not args.question.strip():
        get_logger(__name__).error("Question cannot be empty")
        return 1

    async with Session(settings) as session:
        if not await _connect(session, settings):
            return 1

        result = await session.query(args.question)
        print(result.reply)

        if not result.ok:
            return 1

        if args.show_tools and result.tool_calls:
            print("\n--- Tool Calls ---")
            for record in result.tool_calls:
                outcome = record.error or record.result or ""
                print(f"  {record.name}({json.dumps(record.arguments)}) → {outcome[:200]}")

        print(f"\nTokens: {result.usage.total_tokens} "
              f"(prompt {result.usage.prompt_tokens} "
              f"+ completion {result.usage.completion_tokens})", file=sys.stderr)
        return 0


async def cmd_tools(args, settings: Settings) -> int:
    """List a server's tools."""
    async with Session(settings) as session:
        if not await _connect(session, settings):
            return 1

        catalog = session.tools
        print(f"\n=== {session.server_name}: {len(catalog)} tools ===")
        for tool in catalog:
            print(f"\n{tool.name}")
            if tool.description:
                print(f"    {tool.description}")
            if args.schemas:
                print(json.dumps(tool.parameters, indent=2))
        return 0


def cmd_serve(args, settings: Settings) -> int:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from toolbridge.api import create_app

    api_update = {}
    if args.host is not None:
        api_update["host"] = args.host
    if args.port is not None:
        api_update["port"] = args.port
    if api_update:
        settings = settings.model_copy(update={"api": settings.api.model_copy(update=api_update)})

    app = create_app(settings=settings)
    uvicorn.run(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.log_level.lower(),
    )
    return 0


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    # Load settings
    try:
        settings = load_settings(env_file=args.env_file)
    except Exception as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    # Override log level if specified
    if args.log_level:
        settings.log_level = args.log_level

    settings = _apply_server_overrides(args, settings)

    setup_logging(settings)

    if args.command == "config":
        return cmd_config(settings)
    elif args.command == "chat":
        return asyncio.run(cmd_chat(settings))
    elif args.command == "ask":
        return asyncio.run(cmd_ask(args, settings))
    elif args.command == "tools":
        return asyncio.run(cmd_tools(args, settings))
    elif args.command == "serve":
        return cmd_serve(args, settings)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
