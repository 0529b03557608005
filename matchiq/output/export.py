"""Export functions for match listings in multiple formats."""

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from matchiq.matching.dimensions import Dimension


def _format_score(value: Optional[float]) -> str:
    """Format a 0-1 dimension score as a percentage."""
    if value is None:
        return "n/a"
    return f"{int(round(value * 100))}%"


def _sorted(matches: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(matches, key=lambda m: (-m.get("total_score", 0), m.get("id") or 0))


def export_json(
    matches: List[Dict[str, Any]],
    filepath: str,
) -> None:
    """Export matches to JSON format.

    Args:
        matches: Match dictionaries (MatchEntry.to_dict())
        filepath: Path to write JSON file

    Raises:
        IOError: If file cannot be written
    """
    ordered = _sorted(matches)
    export_data = {
        "exported_at": datetime.now().isoformat(),
        "total_matches": len(ordered),
        "strong_count": sum(1 for m in ordered if m.get("total_score", 0) >= 70),
        "matches": [{"rank": i + 1, **m} for i, m in enumerate(ordered)],
    }

    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(export_data, f, indent=2, ensure_ascii=False, default=str)


def export_csv(
    matches: List[Dict[str, Any]],
    filepath: str,
) -> None:
    """Export matches to CSV format, one row per match.

    Args:
        matches: Match dictionaries (MatchEntry.to_dict())
        filepath: Path to write CSV file

    Raises:
        IOError: If file cannot be written
    """
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)

    fieldnames = [
        "rank",
        "match_id",
        "investor",
        "target",
        "total_score",
        "tier",
        *[f"{d.value}_score" for d in Dimension],
        "status",
        "deal_id",
    ]

    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()

        for i, m in enumerate(_sorted(matches), 1):
            row = {
                "rank": i,
                "match_id": m.get("id"),
                "investor": m.get("investor_name", ""),
                "target": m.get("target_name", ""),
                "total_score": m.get("total_score", 0),
                "tier": m.get("tier_label", ""),
                "status": m.get("status", ""),
                "deal_id": m.get("deal_id") or "",
            }
            for d in Dimension:
                value = m.get(f"{d.value}_score")
                row[f"{d.value}_score"] = "" if value is None else value
            writer.writerow(row)


def export_markdown(
    matches: List[Dict[str, Any]],
    filepath: str,
) -> None:
    """Export matches to Markdown format.

    Args:
        matches: Match dictionaries (MatchEntry.to_dict())
        filepath: Path to write Markdown file

    Raises:
        IOError: If file cannot be written
    """
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)

    ordered = _sorted(matches)
    lines = [
        "# MatchIQ Matches",
        "",
        f"*Exported: {datetime.now().strftime('%Y-%m-%d %H:%M')}*",
        "",
        f"**Total matches:** {len(ordered)}",
        "",
        "| # | Investor | Target | Score | Tier | Status |",
        "|---|----------|--------|-------|------|--------|",
    ]
    for i, m in enumerate(ordered, 1):
        investor = str(m.get("investor_name", "")).replace("|", "\\|")
        target = str(m.get("target_name", "")).replace("|", "\\|")
        lines.append(
            f"| {i} | {investor} | {target} | {m.get('total_score', 0)} "
            f"| {m.get('tier_label', '')} | {m.get('status', '')} |"
        )
    lines.append("")

    for i, m in enumerate(ordered, 1):
        lines.append(f"## {i}. {m.get('investor_name', '')} ↔ {m.get('target_name', '')}")
        lines.append("")
        lines.append(f"- **Score:** {m.get('total_score', 0)} ({m.get('tier_label', '')})")
        explanations = m.get("explanations") or {}
        for d in Dimension:
            detail = explanations.get(d.value)
            suffix = f": {detail}" if detail else ""
            lines.append(f"- **{d.value.capitalize()}:** {_format_score(m.get(f'{d.value}_score'))}{suffix}")
        lines.append("")

    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))


def export_matches(matches: List[Dict[str, Any]], filepath: str) -> str:
    """Export matches, picking the format from the file extension.

    ``.csv`` writes CSV, ``.md`` writes Markdown, anything else JSON.

    Returns:
        The format written ("csv", "markdown" or "json")
    """
    suffix = Path(filepath).suffix.lower()
    if suffix == ".csv":
        export_csv(matches, filepath)
        return "csv"
    if suffix in (".md", ".markdown"):
        export_markdown(matches, filepath)
        return "markdown"
    export_json(matches, filepath)
    return "json"
