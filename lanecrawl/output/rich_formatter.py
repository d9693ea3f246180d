"""Rich-based output formatter with colored tables and panels."""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from lanecrawl.models import Candidate, City, LaneResult

# Tier label -> Rich style
_TIER_STYLES = {
    "0-25": "green",
    "25-35": "green",
    "35-50": "cyan",
    "50-75": "yellow",
    "75-100": "red",
}


def _render(renderable) -> str:
    """Render a Rich object to a string."""
    buf = StringIO()
    console = Console(file=buf, force_terminal=True, width=120)
    console.print(renderable)
    return buf.getvalue()


class RichFormatter:
    """Format pairing results using Rich tables and panels."""

    def format_result(self, result: LaneResult) -> str:
        parts: list[str] = []

        status = Text()
        if result.is_complete:
            status.append("COMPLETE", style="bold green")
        else:
            status.append("SHORT", style="bold yellow")
        status.append(f"  {result.achieved_count}/{result.required_count} pairs\n")
        status.append(f"Equipment: {result.equipment}   Policy: {result.policy.value}")
        if result.relaxed:
            status.append("   (market reuse allowed)", style="yellow")
        if result.shortfall_reason is not None:
            status.append(f"\nShortfall: {result.shortfall_reason.value}", style="yellow")
        title = f"{result.base_origin.label} -> {result.base_destination.label}"
        parts.append(_render(Panel(status, title=title, border_style="blue")))

        if result.pairs:
            table = Table(show_header=True, header_style="bold")
            table.add_column("#", justify="right")
            table.add_column("Pickup")
            table.add_column("Mi", justify="right")
            table.add_column("Mkt")
            table.add_column("Delivery")
            table.add_column("Mi", justify="right")
            table.add_column("Mkt")
            table.add_column("Score", justify="right")
            table.add_column("Tier")
            for i, pair in enumerate(result.pairs, 1):
                table.add_row(
                    str(i),
                    pair.pickup.label,
                    f"{pair.pickup_distance:.1f}",
                    Text(pair.pickup_market, style="magenta" if pair.pickup_market_synthesized else ""),
                    pair.delivery.label,
                    f"{pair.delivery_distance:.1f}",
                    Text(pair.delivery_market, style="magenta" if pair.delivery_market_synthesized else ""),
                    f"{pair.score:.3f}",
                    Text(pair.tier, style=_TIER_STYLES.get(pair.tier, "")),
                )
            parts.append(_render(table))
        return "".join(parts)

    def format_city(self, city: City) -> str:
        body = Text()
        body.append(f"Postal code: {city.postal_code or '-'}\n")
        body.append(f"Location:    {city.latitude:.4f}, {city.longitude:.4f}\n")
        body.append(f"Market:      {city.market_code or '-'} {city.market_name or ''}\n")
        body.append(f"Population:  {city.population:,}")
        return _render(Panel(body, title=city.label, border_style="blue"))

    def format_candidates(self, base: City, candidates: list[Candidate]) -> str:
        table = Table(title=f"Candidates near {base.label}", show_header=True, header_style="bold")
        table.add_column("City")
        table.add_column("Mi", justify="right")
        table.add_column("Market")
        table.add_column("Score", justify="right")
        table.add_column("Source")
        for c in candidates:
            table.add_row(
                c.city.label,
                f"{c.distance:.1f}",
                Text(c.market_code, style="magenta" if c.market_synthesized else ""),
                f"{c.score:.3f}",
                c.source.value,
            )
        return _render(table)
