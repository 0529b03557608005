"""Command parser for slash commands."""

from dataclasses import dataclass
from enum import Enum, auto

from matchiq.matching.rescan import Viewpoint
from matchiq.matching.scorer import Tier
from matchiq.matching.service import MatchQuery


class CommandType(Enum):
    """Types of slash commands."""

    HELP = auto()
    QUIT = auto()
    RESCAN = auto()
    CANCEL = auto()
    MATCHES = auto()
    SHOW = auto()
    APPROVE = auto()
    DISMISS = auto()
    CONVERT = auto()
    STATS = auto()
    WEIGHTS = auto()
    SAVE = auto()
    UNKNOWN = auto()


@dataclass
class CommandResult:
    """Result of parsing a command."""

    command_type: CommandType
    args: list[str]
    raw_input: str
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        """Check if the command is valid."""
        return self.error is None and self.command_type != CommandType.UNKNOWN

    @property
    def flags(self) -> set[str]:
        return {arg.lower() for arg in self.args if arg.startswith("--")}

    @property
    def positional(self) -> list[str]:
        return [arg for arg in self.args if not arg.startswith("--")]


class CommandParser:
    """Parser for slash commands."""

    COMMANDS = {
        "/help": CommandType.HELP,
        "/quit": CommandType.QUIT,
        "/exit": CommandType.QUIT,
        "/q": CommandType.QUIT,
        "/rescan": CommandType.RESCAN,
        "/cancel": CommandType.CANCEL,
        "/matches": CommandType.MATCHES,
        "/show": CommandType.SHOW,
        "/approve": CommandType.APPROVE,
        "/review": CommandType.APPROVE,
        "/dismiss": CommandType.DISMISS,
        "/convert": CommandType.CONVERT,
        "/stats": CommandType.STATS,
        "/weights": CommandType.WEIGHTS,
        "/save": CommandType.SAVE,
    }

    # Commands whose first argument must be a match id
    NEEDS_MATCH_ID = {
        CommandType.SHOW,
        CommandType.APPROVE,
        CommandType.DISMISS,
        CommandType.CONVERT,
    }

    HELP_TEXT = """
Available Commands:
  /help                   Show this help message
  /quit, /exit, /q        Exit the application
  /rescan [--force]       Recompute all matches (--force includes dismissed pairs)
  /rescan investor <id>   Recompute one investor against all targets
  /rescan target <id>     Recompute one target against all investors
  /cancel                 Stop a running rescan after the current batch
  /matches [filters]      List matches, e.g. /matches min=70 tier=good view=target
                          Filters: min, tier, industry, country, status,
                          investor, target, view (investor|target), page, --all
  /show <id>              Show match details
  /approve <id> [note]    Mark a match as reviewed
  /dismiss <id> [note]    Dismiss a match
  /convert <id> [note]    Convert a match into a deal
  /stats                  Show match statistics
  /weights [name=value]   Show or change dimension weights
  /save [filename]        Save listed matches to file (JSON, CSV, or MD)

Keyboard Shortcuts:
  Ctrl+Q                  Quit the application
  Ctrl+C                  Quit the application
  Up/Down                 Navigate list
  Enter                   View selected match
  """

    def parse(self, input_text: str) -> CommandResult:
        """Parse a command string.

        Args:
            input_text: The raw input text from the user.

        Returns:
            CommandResult with parsed command and arguments.
        """
        input_text = input_text.strip()

        if not input_text:
            return CommandResult(
                command_type=CommandType.UNKNOWN,
                args=[],
                raw_input=input_text,
                error="Empty command",
            )

        if not input_text.startswith("/"):
            return CommandResult(
                command_type=CommandType.UNKNOWN,
                args=[],
                raw_input=input_text,
                error="Commands must start with /",
            )

        parts = input_text.split()
        command = parts[0].lower()
        args = parts[1:] if len(parts) > 1 else []

        if command not in self.COMMANDS:
            return CommandResult(
                command_type=CommandType.UNKNOWN,
                args=args,
                raw_input=input_text,
                error=f"Unknown command: {command}. Type /help for available commands.",
            )

        command_type = self.COMMANDS[command]
        error = None
        if command_type in self.NEEDS_MATCH_ID and (not args or not args[0].isdigit()):
            error = f"Usage: {command} <match id>"

        return CommandResult(
            command_type=command_type,
            args=args,
            raw_input=input_text,
            error=error,
        )

    def get_help_text(self) -> str:
        """Get the help text for all commands."""
        return self.HELP_TEXT.strip()


def parse_match_filters(args: list[str]) -> MatchQuery:
    """Build a MatchQuery from /matches arguments.

    Arguments are ``key=value`` pairs plus the ``--all`` flag, which also
    lists dismissed matches.

    Raises:
        ValueError: On an unknown key or a malformed value
    """
    query = MatchQuery()
    for arg in args:
        if arg.lower() == "--all":
            query.include_dismissed = True
            continue
        if "=" not in arg:
            raise ValueError(f"Expected key=value, got '{arg}'")

        key, value = arg.split("=", 1)
        key = key.strip().lower()
        value = value.strip()
        if not value:
            raise ValueError(f"Missing value for '{key}'")

        if key in ("min", "min_score"):
            query.min_score = _int(key, value)
        elif key == "tier":
            query.tier = None if value.lower() == "all" else Tier(value.lower())
        elif key == "industry":
            query.industry = value
        elif key == "country":
            query.country = value
        elif key == "status":
            query.status = value.lower()
        elif key == "investor":
            query.investor_id = _int(key, value)
        elif key == "target":
            query.target_id = _int(key, value)
        elif key in ("view", "mode"):
            query.viewpoint = Viewpoint(value.lower())
        elif key == "page":
            query.page = _int(key, value)
        else:
            raise ValueError(f"Unknown filter: {key}")
    return query


def _int(key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"'{key}' must be a whole number, got '{value}'") from None
