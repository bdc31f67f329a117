"""
termbridge — drive shell commands inside the user's visible terminal.

An automated caller (an AI agent over MCP) asks termbridge to run commands
in a real Terminal.app or iTerm2 tab instead of a hidden pipe.  A human can
watch and intervene; the caller still gets deterministic completion,
bounded waiting, and output retrieval.

Package layout (src/termbridge/):
  core/       — config, logging, session addressing/resolution, engines
  os/         — process-table queries, signalling, file tailing
  backends/   — terminal application backends (AppleScript)
  cli/        — Click CLI entry point (the engine)
  bridge/     — caller-side supervisor and MCP tool server
"""

__version__ = "0.4.0"
__all__ = ["__version__"]
