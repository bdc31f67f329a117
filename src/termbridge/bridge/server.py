"""Stdio MCP server exposing the single ``terminal`` tool.

Every call spawns one engine process (``python -m termbridge ... --json``)
through EngineSupervisor, so a wedged AppleScript call can never hang the
server itself.  stdout carries the MCP protocol; logs go to stderr and the
log file.

Usage:
    termbridge-mcp
    python -m termbridge.bridge.server
"""

from __future__ import annotations

import sys
from typing import Any

import structlog
from mcp.server.fastmcp import FastMCP

from termbridge.bridge.supervisor import EngineSupervisor
from termbridge.bridge.tool import TerminalTool
from termbridge.core.config import TermbridgeConfig, load_config
from termbridge.core.exceptions import ConfigError
from termbridge.core.logging import configure_logging

logger = structlog.get_logger()

_tool: TerminalTool | None = None


def get_tool() -> TerminalTool:
    global _tool
    if _tool is None:
        _tool = TerminalTool(EngineSupervisor(load_config()))
    return _tool


def set_config(config: TermbridgeConfig) -> None:
    global _tool
    _tool = TerminalTool(EngineSupervisor(config))


mcp = FastMCP(
    name="termbridge",
    instructions=(
        "Runs shell commands in the user's visible terminal tabs. Each "
        "(project_path, tag) pair maps to one persistent tab, created on "
        "first use and reused afterwards, so long-running servers and "
        "interactive state survive between calls. Use action='execute' "
        "with an empty command to only open the tab. Use background=true "
        "for servers and watchers, then action='read' to check on them "
        "and action='kill' to stop them."
    ),
)


@mcp.tool()
async def terminal(
    action: str = "execute",
    project_path: str | None = None,
    tag: str | None = None,
    command: str | None = None,
    background: bool | None = None,
    lines: int | None = None,
    timeout: float | None = None,
    focus: bool | None = None,
) -> dict[str, Any]:
    """Run, read, list, focus or stop commands in persistent terminal tabs.

    Args:
        action: One of execute, read, list, info, focus, kill.
        project_path: Absolute project directory; scopes the tab to a project.
        tag: Tab name within the project. Defaults to the project folder name.
        command: Shell command for execute. Empty only prepares the tab.
        background: Run detached and return the first seconds of output.
        lines: How many trailing output lines to return (0 or less: all).
        timeout: Seconds to wait for a foreground command, or to sample a
            background one.
        focus: Bring the tab to the front (true) or leave focus alone (false).
    """
    params = {
        "action": action,
        "project_path": project_path,
        "tag": tag,
        "command": command,
        "background": background,
        "lines": lines,
        "timeout": timeout,
        "focus": focus,
    }
    result = await get_tool().handle(params)
    return result.to_dict()


def main() -> None:
    """Entry point for the MCP server."""
    try:
        config = load_config()
    except ConfigError as exc:
        configure_logging(level="WARNING")
        logger.error("config_invalid", error=str(exc))
        sys.exit(int(exc.exit_code))

    configure_logging(
        level=config.log_level, json_output=config.log_json, log_file=config.log_path
    )
    set_config(config)
    logger.info("mcp_server_starting", terminal_app=str(config.terminal_app))
    try:
        mcp.run(transport="stdio")
    except Exception:
        logger.exception("mcp_server_crashed")
        raise


if __name__ == "__main__":
    main()
