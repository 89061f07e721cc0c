"""Terminal UI components."""

from .terminal import TerminalUI

__all__ = ["TerminalUI"]
