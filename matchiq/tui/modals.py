from typing import Any, Dict, Optional

from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, RichLog, Static

from matchiq.matching.dimensions import Dimension
from matchiq.tui.widgets import score_style

class MatchDetailModal(ModalScreen):
    """Modal screen for displaying match details."""

    BINDINGS = [("escape", "close", "Close")]

    CSS = """
    MatchDetailModal {
        align: center middle;
        background: rgba(0, 0, 0, 0.5);
    }

    #detail-dialog {
        width: 80%;
        height: 80%;
        border: thick $primary;
        background: $surface;
        padding: 1 2;
        layout: grid;
        grid-size: 1;
        grid-rows: auto 1fr auto;
    }

    #modal-header {
        text-style: bold;
        content-align: center middle;
        background: $secondary;
        color: $text;
        padding: 1;
        margin-bottom: 1;
    }

    #detail-content {
        height: 100%;
        scrollbar-gutter: stable;
        border: solid $primary-muted;
    }

    #close-btn {
        dock: bottom;
        width: 100%;
        margin-top: 1;
    }
    """

    def __init__(self, detail: Dict[str, Any]) -> None:
        """Args:
            detail: Result of MatchService.match_detail()
        """
        super().__init__()
        self._detail = detail

    def compose(self) -> ComposeResult:
        investor = self._detail["investor"].get("name") or "Investor"
        target = self._detail["target"].get("name") or "Target"

        with Vertical(id="detail-dialog"):
            yield Static(f"{investor} ↔ {target}", id="modal-header")
            yield RichLog(id="detail-content", highlight=True, markup=True)
            yield Button("Close", id="close-btn", variant="primary")

    def on_mount(self) -> None:
        """Display match details."""
        output = self.query_one("#detail-content", RichLog)
        self._render_details(output)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "close-btn":
            self.dismiss()

    def action_close(self) -> None:
        self.dismiss()

    def _render_details(self, output: RichLog) -> None:
        """Render match details to the log."""
        match = self._detail["match"]
        score = match["total_score"]
        style = score_style(score)

        output.write(f"[dim]Match #{match['id']} · status {match['status']}[/dim]")
        if match.get("deal_id"):
            output.write(f"[cyan]Deal:[/cyan] #{match['deal_id']}")
        output.write(f"[{style}]Score: {score} ({match['tier_label']})[/{style}]")
        output.write("")

        # Per-dimension breakdown
        output.write("[bold]Breakdown[/bold]")
        explanations = match.get("explanations") or {}
        for dimension in Dimension:
            value = match.get(f"{dimension.value}_score")
            shown = "n/a" if value is None else f"{int(round(value * 100))}%"
            output.write(f"  [cyan]{dimension.value.capitalize()}:[/cyan] {shown}")
            explanation = explanations.get(dimension.value)
            if explanation:
                output.write(f"      [dim]{explanation}[/dim]")
        output.write("")

        # Financials in USD
        output.write("[bold]Financials (USD)[/bold]")
        output.write(f"  [green]Budget:[/green] {self._format_range(self._detail.get('budget_usd'))}")
        output.write(f"  [green]Ask:[/green] {self._format_range(self._detail.get('ask_usd'))}")
        output.write("")

        investor = self._detail["investor"]
        target = self._detail["target"]
        output.write("[bold]Investor[/bold]")
        output.write(f"  Industries: {self._names(investor.get('industries'))}")
        output.write(f"  Target countries: {', '.join(investor.get('target_countries') or []) or '-'}")
        output.write(f"  Timeline: {investor.get('timeline') or '-'}")
        output.write("")
        output.write("[bold]Target[/bold]")
        output.write(f"  Industries: {self._names(target.get('industries'))}")
        output.write(f"  HQ: {target.get('hq_country') or '-'}")
        output.write(f"  Timeline: {target.get('timeline') or '-'}")

        if match.get("notes"):
            output.write("")
            output.write("[bold]Notes[/bold]")
            output.write(f"  {match['notes']}")

    def _format_range(self, value: Optional[Dict[str, Optional[float]]]) -> str:
        if not value:
            return "not set"
        low, high = value.get("min"), value.get("max")
        if low is not None and high is not None and low != high:
            return f"${low:,.0f} - ${high:,.0f}"
        if high is None:
            return f"${low:,.0f}+" if low is not None else "not set"
        return f"${high:,.0f}"

    def _names(self, industries: Any) -> str:
        names = [i.get("name", "") for i in industries or []]
        return ", ".join(n for n in names if n) or "-"
