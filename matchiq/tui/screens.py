"""Console screen for MatchIQ."""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.message import Message
from textual.screen import Screen
from textual.widgets import Input, RichLog, Static

from matchiq.config import DEFAULT_EXPORT_PATH, EngineSettings, ensure_data_dir, save_settings
from matchiq.errors import MatchIQError
from matchiq.matching.lifecycle import LifecycleAction
from matchiq.matching.rescan import RescanOptions, RescanSummary, Viewpoint
from matchiq.matching.scorer import MatchWeights
from matchiq.matching.service import MatchQuery, MatchService
from matchiq.output.export import export_matches
from matchiq.tui.commands import CommandParser, CommandType, parse_match_filters
from matchiq.tui.modals import MatchDetailModal
from matchiq.tui.widgets import MatchContainer, MatchTable

logger = logging.getLogger(__name__)


@dataclass
class RescanFinished(Message):
    """Message posted when a rescan worker completes."""
    summary: RescanSummary


@dataclass
class RescanFailed(Message):
    """Message posted when a rescan worker fails."""
    error: str


WELCOME_TEXT = """[bold #d4af37]M A T C H I Q[/bold #d4af37]

[bold]Get Started:[/bold]

[gold3]1.[/gold3] Score all pairs        [green]/rescan[/green]
[gold3]2.[/gold3] Browse matches         [green]/matches[/green]
[gold3]3.[/gold3] Review a match         [green]/show <id>[/green]
[gold3]4.[/gold3] Export results         [green]/save[/green]

[dim]Type /help for all commands[/dim]"""


class MatchScreen(Screen):
    """Main screen - command input at bottom, log and match table above."""

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
        Binding("ctrl+c", "quit", "Quit"),
        Binding("escape", "focus_input", "Focus Input", show=False),
    ]

    DEFAULT_CSS = """
    MatchScreen #header {
        height: 1;
        content-align: center middle;
        text-style: bold;
        background: $secondary;
    }

    MatchScreen #console {
        height: 1fr;
        border: solid $primary-muted;
    }

    MatchScreen #matches {
        height: 2fr;
    }

    MatchScreen #input-container {
        height: auto;
        dock: bottom;
    }

    MatchScreen #tips {
        color: $text-muted;
        padding: 0 1;
    }
    """

    def __init__(self, service: MatchService, settings: EngineSettings) -> None:
        super().__init__()
        self.service = service
        self.settings = settings
        self.weights: MatchWeights = settings.weights
        self.command_parser = CommandParser()
        self._cancel_event: Optional[threading.Event] = None
        self._listed: List[Dict[str, Any]] = []

    def compose(self) -> ComposeResult:
        yield Static("M A T C H I Q", id="header")
        yield MatchContainer(id="matches")
        yield RichLog(id="console", markup=True, wrap=True)
        with Vertical(id="input-container"):
            yield Input(placeholder="Type a command (/help)...", id="input")
            yield Static("Ctrl+Q Quit • /rescan Score pairs • /help Commands", id="tips")

    def on_mount(self) -> None:
        """Show welcome message on mount."""
        self._log().write(WELCOME_TEXT)
        self.query_one("#input", Input).focus()

    def _log(self) -> RichLog:
        return self.query_one("#console", RichLog)

    def action_focus_input(self) -> None:
        """Focus the input field."""
        self.query_one("#input", Input).focus()

    def action_quit(self) -> None:
        """Quit the application."""
        if self._cancel_event is not None:
            self._cancel_event.set()
        self.app.exit()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        """Handle input submission."""
        text = event.value.strip()
        if not text:
            return

        # Clear input
        event.input.value = ""

        log = self._log()
        log.write(f"[bold]> {text}[/bold]")

        if text.startswith("/"):
            self._handle_command(text, log)
        else:
            log.write("[dim]Type /help for commands[/dim]")

    def _handle_command(self, text: str, log: RichLog) -> None:
        """Handle slash commands."""
        result = self.command_parser.parse(text)

        if not result.is_valid:
            log.write(f"[#ef4444]{result.error}[/#ef4444]")
            return

        try:
            match result.command_type:
                case CommandType.HELP:
                    log.write(self.command_parser.get_help_text())
                case CommandType.QUIT:
                    self.action_quit()
                case CommandType.RESCAN:
                    self._cmd_rescan(log, result.positional, "--force" in result.flags)
                case CommandType.CANCEL:
                    self._cmd_cancel(log)
                case CommandType.MATCHES:
                    self._cmd_matches(log, result.args)
                case CommandType.SHOW:
                    self._cmd_show(int(result.args[0]))
                case CommandType.APPROVE:
                    self._cmd_transition(log, result.args, LifecycleAction.APPROVE)
                case CommandType.DISMISS:
                    self._cmd_transition(log, result.args, LifecycleAction.DISMISS)
                case CommandType.CONVERT:
                    self._cmd_transition(log, result.args, LifecycleAction.CONVERT)
                case CommandType.STATS:
                    self._cmd_stats(log)
                case CommandType.WEIGHTS:
                    self._cmd_weights(log, result.args)
                case CommandType.SAVE:
                    self._cmd_save(log, result.args)
                case _:
                    log.write("[#ef4444]Unknown command. Type /help for available commands.[/#ef4444]")
        except (MatchIQError, ValueError) as e:
            log.write(f"[#ef4444]{e}[/#ef4444]")

    # ------------------------------------------------------------------
    # Rescan
    # ------------------------------------------------------------------

    def _cmd_rescan(self, log: RichLog, args: list[str], force: bool) -> None:
        """Start a rescan in a worker thread."""
        if self._cancel_event is not None:
            log.write("[#f59e0b]A rescan is already running. Use /cancel to stop it.[/#f59e0b]")
            return

        viewpoint = None
        prospect_id = None
        if args:
            if len(args) != 2 or not args[1].isdigit():
                raise ValueError("Usage: /rescan [investor|target <id>] [--force]")
            viewpoint = Viewpoint(args[0].lower())
            prospect_id = int(args[1])

        options = RescanOptions.from_config(self.settings.rescan, force=force)
        self._cancel_event = threading.Event()
        scope = f"{viewpoint.value} #{prospect_id}" if viewpoint else "all pairs"
        log.write(f"[#f59e0b]Rescanning {scope}...[/#f59e0b]")

        self.run_worker(
            lambda: self._rescan_worker(options, viewpoint, prospect_id),
            name="rescan",
            thread=True,
            exclusive=True,
        )

    def _rescan_worker(
        self,
        options: RescanOptions,
        viewpoint: Optional[Viewpoint],
        prospect_id: Optional[int],
    ) -> None:
        """Worker that runs the rescan off the UI thread."""
        try:
            if viewpoint is None:
                summary = self.service.rescan_all(self.weights, options, self._cancel_event)
            else:
                summary = self.service.rescan_for(
                    viewpoint, prospect_id, self.weights, options, self._cancel_event
                )
            self.post_message(RescanFinished(summary=summary))
        except Exception as e:
            logger.error(f"Rescan worker error: {e}")
            self.post_message(RescanFailed(error=str(e)))

    def on_rescan_finished(self, message: RescanFinished) -> None:
        self._cancel_event = None
        s = message.summary
        state = "cancelled" if s.cancelled else "complete"
        self._log().write(
            f"[#10b981]Rescan {state}:[/#10b981] {s.updated_count} updated, "
            f"{s.strong_match_count} strong ({s.notified_count} new), "
            f"{s.skipped_count} skipped, {s.failed_count} failed"
        )

    def on_rescan_failed(self, message: RescanFailed) -> None:
        self._cancel_event = None
        self._log().write(f"[#ef4444]Rescan failed: {message.error}[/#ef4444]")

    def _cmd_cancel(self, log: RichLog) -> None:
        if self._cancel_event is None:
            log.write("[dim]No rescan is running[/dim]")
            return
        self._cancel_event.set()
        log.write("[#f59e0b]Cancelling after the current batch...[/#f59e0b]")

    # ------------------------------------------------------------------
    # Listing and review
    # ------------------------------------------------------------------

    def _cmd_matches(self, log: RichLog, args: list[str]) -> None:
        query = parse_match_filters(args)
        self._show_page(log, query)

    def _show_page(self, log: RichLog, query: MatchQuery) -> None:
        page = self.service.list_matches(query)
        self._listed = [entry.to_dict() for entry in page.entries]

        container = self.query_one("#matches", MatchContainer)
        container.load_page(self._listed, page.meta, Viewpoint(query.viewpoint).value)
        if container.table is not None:
            container.table.focus()

        if not self._listed:
            log.write("[#f59e0b]No matches found. Run /rescan or relax the filters.[/#f59e0b]")
        else:
            log.write(
                f"Showing {len(self._listed)} of {page.total_matches} matches "
                f"(page {page.page}/{page.last_page})"
            )

    def on_match_table_row_selected(self, message: MatchTable.RowSelected) -> None:
        self._cmd_show(message.match_id)

    def _cmd_show(self, match_id: int) -> None:
        try:
            detail = self.service.match_detail(match_id)
        except MatchIQError as e:
            self._log().write(f"[#ef4444]{e}[/#ef4444]")
            return
        self.app.push_screen(MatchDetailModal(detail))

    def _cmd_transition(self, log: RichLog, args: list[str], action: LifecycleAction) -> None:
        match_id = int(args[0])
        notes = " ".join(args[1:]) or None
        match = self.service.transition(match_id, action, actor_id=None, notes=notes)
        message = f"Match #{match.id} is now {match.status}"
        if match.deal_id:
            message += f" (deal #{match.deal_id})"
        log.write(f"[#10b981]{message}[/#10b981]")

    def _cmd_stats(self, log: RichLog) -> None:
        stats = self.service.stats()
        lines = ["[bold #d4af37]Match Statistics[/bold #d4af37]"]
        lines.append(f"  Total listed: {stats['total']}")
        for tier in ("excellent", "strong", "good", "fair"):
            lines.append(f"  [#a0a0a0]{tier.capitalize()}:[/#a0a0a0] {stats[tier]}")
        lines.append(f"  Average score: {stats['avg_score']}")
        log.write("\n".join(lines))

    def _cmd_weights(self, log: RichLog, args: list[str]) -> None:
        """Show weights, or update them with name=value pairs (and 'save')."""
        save = "save" in [a.lower() for a in args]
        changes = {}
        for arg in args:
            if arg.lower() == "save":
                continue
            if "=" not in arg:
                raise ValueError(f"Expected name=value, got '{arg}'")
            name, value = arg.split("=", 1)
            changes[name.strip().lower()] = value

        if changes:
            self.weights = MatchWeights.from_mapping({**self.weights.as_dict(), **changes})
            log.write("[#10b981]Weights updated[/#10b981]")

        lines = ["[bold #d4af37]Weights[/bold #d4af37]"]
        for name, value in self.weights.as_dict().items():
            lines.append(f"  [#a0a0a0]{name}:[/#a0a0a0] {value:g}")
        log.write("\n".join(lines))

        if save:
            self.settings = self.settings.model_copy(update={"weights": self.weights})
            path = save_settings(self.settings)
            log.write(f"[#10b981]Saved settings to {path}[/#10b981]")

    def _cmd_save(self, log: RichLog, args: list[str]) -> None:
        """Save the listed matches to file."""
        if not self._listed:
            log.write("[#f59e0b]Nothing to save. Run /matches first.[/#f59e0b]")
            return

        # Default to data/matches.csv
        if args:
            filepath = Path(args[0])
            # If just a filename without path, put it in data/
            if not filepath.parent.name:
                ensure_data_dir()
                filepath = DEFAULT_EXPORT_PATH.parent / args[0]
        else:
            ensure_data_dir()
            filepath = DEFAULT_EXPORT_PATH

        try:
            fmt = export_matches(self._listed, str(filepath))
        except OSError as e:
            log.write(f"[#ef4444]Save failed: {e}[/#ef4444]")
            return
        log.write(f"[#10b981]Saved {len(self._listed)} matches to {filepath} ({fmt})[/#10b981]")
