"""
Tool host server resolution.

A session connects to a tool host by identifier. With a config document the
identifier names an entry in ``mcpServers``:

    {
      "mcpServers": {
        "filesystem": {"command": "npx", "args": ["-y", "@modelcontextprotocol/server-filesystem", "."]},
        "weather": {"command": "python", "args": ["weather.py"], "env": {"API_KEY": "..."}}
      },
      "defaultServer": "weather",
      "system": "You are a helpful assistant."
    }

The identifier ``"default"`` resolves through ``defaultServer``. Without a
config document the identifier is a path to a server script, launched with the
current Python interpreter for ``.py`` files and with ``node`` otherwise.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import aiofiles
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from toolbridge.errors import ToolHostConnectionError

logger = logging.getLogger(__name__)

DEFAULT_IDENTIFIER = "default"


class ServerEntry(BaseModel):
    """One ``mcpServers`` entry: how to launch a tool host process."""

    command: str = Field(min_length=1, description="Executable to launch")
    args: list[str] = Field(default_factory=list, description="Command-line arguments")
    env: dict[str, str] | None = Field(default=None, description="Environment for the process")

    model_config = ConfigDict(extra="ignore")


class ServerConfigDocument(BaseModel):
    """The server config document."""

    mcp_servers: dict[str, ServerEntry] = Field(default_factory=dict, alias="mcpServers")
    default_server: str | None = Field(default=None, alias="defaultServer")
    system: str | None = Field(default=None, description="Initial system prompt")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def resolve(self, identifier: str) -> tuple[str, ServerEntry] | None:
        """
        Find the entry for an identifier.

        Returns:
            (resolved server name, entry), or None when nothing matches.
        """
        if identifier in self.mcp_servers:
            return identifier, self.mcp_servers[identifier]
        if (
            identifier == DEFAULT_IDENTIFIER
            and self.default_server
            and self.default_server in self.mcp_servers
        ):
            return self.default_server, self.mcp_servers[self.default_server]
        return None


class ServerLaunch(BaseModel):
    """A fully resolved tool host: what to run plus the session's system prompt."""

    name: str
    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] | None = None
    system_prompt: str = ""

    model_config = ConfigDict(frozen=True)


async def load_server_config(config_path: str | Path) -> ServerConfigDocument:
    """
    Read and validate a server config document.

    Raises:
        ToolHostConnectionError: If the file cannot be read or is not a valid document.
    """
    path = Path(config_path)
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            raw = await f.read()
    except OSError as e:
        raise ToolHostConnectionError(f"Cannot read server config {path}: {e}", cause=e) from e

    try:
        return ServerConfigDocument.model_validate_json(raw)
    except ValidationError as e:
        raise ToolHostConnectionError(f"Invalid server config {path}: {e}", cause=e) from e


def launch_for_script(script_path: str) -> ServerLaunch:
    """Build launch parameters for a bare server script path."""
    is_python = script_path.endswith(".py")
    if not is_python and not script_path.endswith(".js"):
        logger.warning(f"Server script {script_path!r} is neither .py nor .js; trying node")

    return ServerLaunch(
        name=Path(script_path).stem or script_path,
        command=sys.executable if is_python else "node",
        args=[script_path],
    )


async def resolve_server(identifier: str, config_path: str | Path | None = None) -> ServerLaunch:
    """
    Turn a server identifier into launch parameters.

    Args:
        identifier: Server name from the config document, ``"default"``, or a
                    script path when no config document is given
        config_path: Optional path to the server config document

    Raises:
        ToolHostConnectionError: If the document cannot be loaded or the
                                 identifier does not resolve.
    """
    if config_path is None:
        return launch_for_script(identifier)

    document = await load_server_config(config_path)
    resolved = document.resolve(identifier)
    if resolved is None:
        raise ToolHostConnectionError(
            f"Server {identifier!r} not found in config file {config_path} "
            f"(available: {', '.join(document.mcp_servers) or 'none'})"
        )

    name, entry = resolved
    if name != identifier:
        logger.info(f"Using default server: {name}")
    else:
        logger.info(f"Using server from config file: {name}")

    return ServerLaunch(
        name=name,
        command=entry.command,
        args=entry.args,
        env=entry.env,
        system_prompt=document.system or "",
    )
