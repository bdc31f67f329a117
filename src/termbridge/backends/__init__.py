"""
Terminal application backends.

Importing this package registers the built-in backends in the
BackendRegistry via their @BackendRegistry.register() decorators.
"""

from termbridge.backends import apple_terminal, ghostty, iterm  # noqa: F401
from termbridge.backends.base import BackendRegistry, Placement, TerminalBackend
from termbridge.core.config import TermbridgeConfig
from termbridge.core.exceptions import UnsupportedTerminalAppError


def get_backend(config: TermbridgeConfig) -> TerminalBackend:
    """Instantiate the backend for ``config.terminal_app``."""
    try:
        backend_cls = BackendRegistry.get(config.terminal_app)
    except KeyError as exc:
        raise UnsupportedTerminalAppError(str(exc)) from exc
    return backend_cls(config)


__all__ = ["BackendRegistry", "Placement", "TerminalBackend", "get_backend"]
