"""Output formatters for lanecrawl.

Provides a Formatter protocol and three implementations:
- RichFormatter: colored Rich tables and panels
- PlainFormatter: plain text without ANSI escapes
- JsonFormatter: camelCase JSON for callers and jq
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from lanecrawl.models import Candidate, City, LaneResult


class Formatter(Protocol):
    """Protocol for formatting pairing results."""

    def format_result(self, result: LaneResult) -> str:
        """Format the pairs found for a lane."""
        ...

    def format_city(self, city: City) -> str:
        """Format a single resolved city."""
        ...

    def format_candidates(self, base: City, candidates: list[Candidate]) -> str:
        """Format scored candidates around a base city."""
        ...


def get_formatter(name: str = "rich") -> Formatter:
    """Get a formatter by name: "rich", "plain" or "json".

    Raises:
        ValueError: If the name is not recognized.
    """
    if name == "rich":
        from lanecrawl.output.rich_formatter import RichFormatter

        return RichFormatter()
    elif name == "plain":
        from lanecrawl.output.plain_formatter import PlainFormatter

        return PlainFormatter()
    elif name == "json":
        from lanecrawl.output.json_formatter import JsonFormatter

        return JsonFormatter()
    else:
        raise ValueError(f"Unknown formatter: {name!r}. Use 'rich', 'plain', or 'json'.")
