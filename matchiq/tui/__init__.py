"""TUI module for the MatchIQ terminal interface."""

from matchiq.tui.commands import CommandParser, CommandResult
from matchiq.tui.screens import MatchScreen

__all__ = ["MatchScreen", "CommandParser", "CommandResult"]
