"""Reporting utilities.

Formats spending analyses and neighborhood summaries into human-readable
text, and writes them out as JSON or CSV.
"""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Dict, IO, List

from .analysis import SpendingAnalysis
from .scene import format_currency


def format_analysis_report(analysis: SpendingAnalysis) -> str:
    lines: List[str] = []
    summary = analysis.summary
    lines.append("=== Statement Analysis ===")
    lines.append(f"Total spent:  {format_currency(summary.total_spent)}")
    lines.append(f"Transactions: {summary.transaction_count}")
    if summary.date_range:
        lines.append(f"Period:       {summary.date_range.start.isoformat()} to {summary.date_range.end.isoformat()}")
    lines.append("")

    lines.append("-- Spend by Location --")
    ranked = sorted(analysis.locations, key=lambda loc: loc.total_spent, reverse=True)
    for loc in ranked:
        where = ", ".join(part for part in (loc.city, loc.state) if part)
        suffix = f"  ({where})" if where else ""
        lines.append(f"{loc.name[:40]:40} {format_currency(loc.total_spent):>12}{suffix}")
        for txn in loc.transactions:
            desc = (txn.description or "")[:30]
            lines.append(f"    {txn.date.isoformat()}  {format_currency(txn.amount):>10}  {desc}")
    return "\n".join(lines)


def format_spending_report(summary: Dict) -> str:
    lines: List[str] = []
    lines.append("=== Neighborhood Summary ===")
    lines.append(f"Locations:   {summary['location_count']}")
    lines.append(f"Total spent: {format_currency(summary['total_spent'])}")
    top = summary.get("top_location")
    if top:
        lines.append(f"Tallest:     {top['name']} ({format_currency(top['total_spent'])})")
    lines.append("")

    lines.append("-- Spend by Category --")
    for cat, amt in summary["by_category"].items():
        lines.append(f"{cat:15} {format_currency(amt)}")
    return "\n".join(lines)


def save_json(data: Dict, path: str | Path) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def _ensure_text_writer(target: str | Path | IO[str]):
    if hasattr(target, "write"):
        return target, None
    path = Path(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = path.open("w", newline="", encoding="utf-8")
    return handle, handle


def export_transactions_csv(analysis: SpendingAnalysis, path: str | Path | IO[str]) -> None:
    rows: List[List[str]] = [["Date", "Time", "Location", "Category", "Amount", "Description"]]
    for loc in analysis.locations:
        for txn in loc.transactions:
            rows.append(
                [
                    txn.date.isoformat(),
                    txn.time or "",
                    loc.name,
                    loc.category or "",
                    f"{txn.amount:.2f}",
                    txn.description or "",
                ]
            )

    writer_target, to_close = _ensure_text_writer(path)
    try:
        writer = csv.writer(writer_target, lineterminator="\n")
        writer.writerows(rows)
    finally:
        if to_close is not None:
            to_close.close()
