"""Custom TUI widgets for MatchIQ."""

from typing import Any, Dict, List, Optional

from rich.text import Text
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.message import Message
from textual.widgets import DataTable, Static


def score_style(score: Optional[float]) -> str:
    """Color for a 0-100 score, matching the tier bands."""
    if score is None:
        return "dim"
    if score >= 80:
        return "bold green"
    if score >= 60:
        return "bold yellow"
    return "bold red"


def format_dimension(value: Optional[float]) -> Text:
    """Format a 0-1 dimension score; None shows as a dash."""
    if value is None:
        return Text("-", style="dim")
    pct = int(round(value * 100))
    return Text(f"{pct}%", style=score_style(pct).replace("bold ", ""))


class MatchTable(DataTable):
    """Data table for displaying matches.

    9 columns:
    - #: Match id
    - Investor / Target: Display names (truncated)
    - Score: Total score with color
    - Tier: Tier label
    - Ind / Geo / Fin / Txn: Key dimension scores
    - Status: Review status
    """

    BINDINGS = [
        Binding("enter", "select_row", "View Details", show=True),
        Binding("j", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up", show=False),
    ]

    # Column widths
    COLUMNS = [
        ("#", 6),
        ("Investor", 24),
        ("Target", 24),
        ("Score", 6),
        ("Tier", 10),
        ("Ind", 5),
        ("Geo", 5),
        ("Fin", 5),
        ("Txn", 5),
        ("Status", 10),
    ]

    STATUS_STYLES = {
        "pending": "yellow",
        "reviewed": "green",
        "dismissed": "red dim",
        "converted": "bold cyan",
    }

    class RowSelected(Message):
        """Message sent when a row is selected."""
        def __init__(self, match_id: int, row_index: int) -> None:
            self.match_id = match_id
            self.row_index = row_index
            super().__init__()

    def __init__(
        self,
        *args,
        **kwargs,
    ) -> None:
        super().__init__(*args, cursor_type="row", zebra_stripes=True, **kwargs)
        self._matches: List[Dict[str, Any]] = []

    def on_mount(self) -> None:
        """Set up table columns on mount."""
        for name, width in self.COLUMNS:
            self.add_column(name, width=width)

    def load_matches(self, matches: List[Dict[str, Any]]) -> int:
        """Load matches into the table.

        Args:
            matches: Match dicts as produced by MatchEntry.to_dict()

        Returns:
            Number of rows added
        """
        self.clear()
        self._matches = matches

        for match in matches:
            self._add_match_row(match)

        return len(matches)

    def _add_match_row(self, match: Dict[str, Any]) -> None:
        score = match.get("total_score", 0)
        status = match.get("status", "pending")

        self.add_row(
            str(match.get("id", "")),
            self._truncate(match.get("investor_name", ""), 22),
            self._truncate(match.get("target_name", ""), 22),
            Text(str(score), style=score_style(score)),
            match.get("tier", ""),
            format_dimension(match.get("industry_score")),
            format_dimension(match.get("geography_score")),
            format_dimension(match.get("financial_score")),
            format_dimension(match.get("transaction_score")),
            Text(status, style=self.STATUS_STYLES.get(status, "")),
            key=str(match.get("id")),
        )

    def _truncate(self, text: str, max_len: int) -> str:
        """Truncate text with ellipsis if too long."""
        if len(text) <= max_len:
            return text
        return text[:max_len - 1] + "…"  # ellipsis

    def get_selected_match(self) -> Optional[Dict[str, Any]]:
        """Get the currently selected match."""
        if self.cursor_row is None or self.cursor_row >= len(self._matches):
            return None
        return self._matches[self.cursor_row]

    def action_select_row(self) -> None:
        """Handle row selection (Enter key)."""
        match = self.get_selected_match()
        if match:
            self.post_message(
                self.RowSelected(
                    match_id=match["id"],
                    row_index=self.cursor_row or 0,
                )
            )


class MatchSummaryBar(Static):
    """Status bar showing listing summary."""

    DEFAULT_CSS = """
    MatchSummaryBar {
        height: 1;
        background: $surface;
        padding: 0 2;
    }
    """

    def update_meta(self, meta: Dict[str, int], viewpoint: str) -> None:
        """Show paging metadata from a MatchPage."""
        text = (
            f"[bold]{meta['total_matches']}[/bold] matches in {meta['total']} "
            f"{viewpoint} clusters | page {meta['current_page']}/{meta['last_page']}"
        )
        text += "  [dim]Enter for details, /save to export[/dim]"
        self.update(text)


class MatchContainer(Vertical):
    """Container for the match table and summary."""

    DEFAULT_CSS = """
    MatchContainer {
        height: 100%;
    }

    MatchContainer > MatchTable {
        height: 1fr;
    }

    MatchContainer > MatchSummaryBar {
        dock: bottom;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._table: Optional[MatchTable] = None
        self._summary: Optional[MatchSummaryBar] = None

    def compose(self) -> ComposeResult:
        """Compose the container."""
        self._table = MatchTable(id="match-table")
        self._summary = MatchSummaryBar(id="match-summary")

        yield self._table
        yield self._summary

    def load_page(self, matches: List[Dict[str, Any]], meta: Dict[str, int], viewpoint: str) -> int:
        """Load one page of matches, already ordered by cluster."""
        if self._table is None or self._summary is None:
            return 0
        count = self._table.load_matches(matches)
        self._summary.update_meta(meta, viewpoint)
        return count

    @property
    def table(self) -> Optional[MatchTable]:
        """Get the match table widget."""
        return self._table
