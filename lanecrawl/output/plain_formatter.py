"""Plain text output formatter -- no ANSI escapes."""

from __future__ import annotations

from lanecrawl.models import Candidate, City, LaneResult


def _header(title: str) -> str:
    """Create a plain text section header."""
    return f"\n{'=' * 60}\n  {title}\n{'=' * 60}\n"


class PlainFormatter:
    """Format pairing results as plain text."""

    def format_result(self, result: LaneResult) -> str:
        lines: list[str] = []
        lines.append(
            _header(f"{result.base_origin.label} -> {result.base_destination.label} ({result.equipment})")
        )
        lines.append(f"  Pairs:  {result.achieved_count}/{result.required_count}")
        lines.append(f"  Policy: {result.policy.value}{' (relaxed)' if result.relaxed else ''}")
        if result.shortfall_reason is not None:
            lines.append(f"  Shortfall: {result.shortfall_reason.value}")
        lines.append("")

        for i, pair in enumerate(result.pairs, 1):
            flag = " *" if pair.market_synthesized else ""
            lines.append(
                f"  {i:>2}. {pair.pickup.label:<24} {pair.pickup_distance:>5.1f} mi [{pair.pickup_market}]"
                f"  ->  {pair.delivery.label:<24} {pair.delivery_distance:>5.1f} mi [{pair.delivery_market}]"
                f"  score {pair.score:.3f}  tier {pair.tier}{flag}"
            )
        if any(p.market_synthesized for p in result.pairs):
            lines.append("")
            lines.append("  * placeholder market code (no catalog reference nearby)")
        return "\n".join(lines)

    def format_city(self, city: City) -> str:
        return "\n".join(
            [
                f"{city.label}",
                f"  Postal code: {city.postal_code or '-'}",
                f"  Location:    {city.latitude:.4f}, {city.longitude:.4f}",
                f"  Market:      {city.market_code or '-'} {city.market_name or ''}".rstrip(),
                f"  Population:  {city.population:,}",
            ]
        )

    def format_candidates(self, base: City, candidates: list[Candidate]) -> str:
        lines = [_header(f"Candidates near {base.label}")]
        if not candidates:
            lines.append("  No candidates found.")
        for c in candidates:
            lines.append(
                f"  {c.city.label:<28} {c.distance:>6.1f} mi  {c.market_code:<8} "
                f"score {c.score:.3f}  ({c.source.value})"
            )
        return "\n".join(lines)
