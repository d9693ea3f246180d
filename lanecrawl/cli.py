"""lanecrawl CLI -- market-diverse pickup/delivery alternatives for a lane.

Provides commands for pairing a lane, looking up catalog cities, listing
scored candidates around a city, and managing the cache and API key.
"""

import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from keyring.errors import KeyringError

from lanecrawl.catalog import CatalogUnavailableError, CityCatalog, ResolutionError, open_catalog
from lanecrawl.config import Settings, load_settings, resolve_here_key, store_here_key

# ---------------------------------------------------------------------------
# App and sub-apps
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="lanecrawl",
    help="Freight lane crawler -- market-diverse pickup/delivery alternatives.",
    no_args_is_help=True,
)

config_app = typer.Typer(
    name="config",
    help="Manage lanecrawl configuration.",
    no_args_is_help=True,
)

cache_app = typer.Typer(
    name="cache",
    help="Manage the geocoder response cache.",
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")
app.add_typer(cache_app, name="cache")


# ---------------------------------------------------------------------------
# Global option types
# ---------------------------------------------------------------------------

JsonFlag = Annotated[bool, typer.Option("--json", help="Output as JSON.")]
PlainFlag = Annotated[bool, typer.Option("--plain", help="Output as plain text (no color).")]
VerboseFlag = Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output.")]
QuietFlag = Annotated[bool, typer.Option("--quiet", "-q", help="Suppress non-essential output.")]
CatalogOption = Annotated[
    Optional[Path],
    typer.Option("--catalog", help="City catalog (.yaml or .db). Defaults to the configured catalog."),
]
NoGeocoderFlag = Annotated[
    bool, typer.Option("--no-geocoder", help="Use the catalog only, never call HERE.")
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_format(json_flag: bool = False, plain_flag: bool = False) -> str:
    """Determine output format: json > plain > TTY auto-detect > rich."""
    if json_flag:
        return "json"
    if plain_flag:
        return "plain"
    if sys.stdout.isatty():
        return "rich"
    return "plain"


def _setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging based on verbosity flags."""
    if quiet:
        logging.basicConfig(level=logging.ERROR)
    elif verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)


def _error_panel(message: str) -> None:
    """Print an error message in a Rich panel on stderr."""
    from rich.console import Console
    from rich.panel import Panel

    console = Console(stderr=True)
    console.print(Panel(message, title="Error", border_style="red"))


def _open_catalog(settings: Settings, catalog: Optional[Path]) -> CityCatalog:
    path = catalog or settings.catalog_path
    if path is None:
        raise CatalogUnavailableError(
            "No city catalog configured.\n"
            "  Hint: pass --catalog PATH, set LANECRAWL_CATALOG, or add catalog_path to ~/.lanecrawl/config.yaml"
        )
    return open_catalog(path)


def _build_geocoder(settings: Settings, disabled: bool):
    if disabled:
        return None
    from lanecrawl.cache import ResponseCache
    from lanecrawl.geocoder import HereGeocoder

    api_key = resolve_here_key(settings)
    if not api_key:
        logging.getLogger(__name__).info("No HERE API key configured, geocoder fallback disabled")
        return None
    return HereGeocoder(
        api_key,
        cache=ResponseCache(settings.cache_dir, ttl_hours=settings.cache_ttl_hours),
        timeout_s=settings.geocoder_timeout_s,
        limit=settings.geocoder_limit,
    )


def _fail(exc: Exception) -> None:
    """Report a user-facing error and exit with its code."""
    _error_panel(str(exc))
    if isinstance(exc, CatalogUnavailableError):
        raise typer.Exit(code=3)
    raise typer.Exit(code=2)


# ---------------------------------------------------------------------------
# Core commands
# ---------------------------------------------------------------------------


@app.command()
def pairs(
    origin: str = typer.Option(..., "--origin", help="Pickup base, e.g. 'Columbus, OH'"),
    dest: str = typer.Option(..., "--dest", help="Delivery base, e.g. 'Nashville, TN'"),
    equipment: str = typer.Option("V", "--equipment", "-e", help="Equipment class code (V, R, FD, ...)"),
    count: Optional[int] = typer.Option(None, "--pairs", "-n", help="Number of pairs (default from config)"),
    max_radius: float = typer.Option(100.0, "--max-radius", help="Maximum search radius in miles"),
    policy: Optional[str] = typer.Option(
        None, "--policy", help="Shortfall policy: report, relax, never_pad (default from config)"
    ),
    catalog: CatalogOption = None,
    no_geocoder: NoGeocoderFlag = False,
    json: JsonFlag = False,
    plain: PlainFlag = False,
    verbose: VerboseFlag = False,
    quiet: QuietFlag = False,
) -> None:
    """Find market-diverse pickup/delivery alternatives for a lane."""
    _setup_logging(verbose, quiet)
    try:
        from lanecrawl.engine import PairingEngine
        from lanecrawl.output import get_formatter
        from lanecrawl.query import build_lane_request

        settings = load_settings()
        request = build_lane_request(
            origin,
            dest,
            equipment=equipment,
            required_pairs=count if count is not None else settings.required_pairs,
            max_radius=max_radius,
            policy=policy or settings.shortfall_policy,
        )
        engine = PairingEngine(
            _open_catalog(settings, catalog),
            geocoder=_build_geocoder(settings, no_geocoder),
            settings=settings,
        )
        result = engine.pair_lane(request)
        fmt = get_formatter(_get_format(json, plain))
        typer.echo(fmt.format_result(result))
    except (CatalogUnavailableError, ResolutionError, ValueError) as exc:
        _fail(exc)


@app.command()
def lookup(
    location: str = typer.Argument(help="City to look up, e.g. 'Columbus, OH'"),
    catalog: CatalogOption = None,
    json: JsonFlag = False,
    plain: PlainFlag = False,
    verbose: VerboseFlag = False,
    quiet: QuietFlag = False,
) -> None:
    """Show how a city resolves against the catalog."""
    _setup_logging(verbose, quiet)
    try:
        from lanecrawl.engine import PairingEngine
        from lanecrawl.output import get_formatter
        from lanecrawl.query import parse_location

        settings = load_settings()
        ref = parse_location(location)
        engine = PairingEngine(_open_catalog(settings, catalog), settings=settings)
        city = engine.resolve_base(ref)
        typer.echo(get_formatter(_get_format(json, plain)).format_city(city))
    except (CatalogUnavailableError, ResolutionError, ValueError) as exc:
        _fail(exc)


@app.command()
def nearby(
    location: str = typer.Argument(help="Base city, e.g. 'Columbus, OH'"),
    radius: float = typer.Option(50.0, "--radius", "-r", help="Search radius in miles"),
    equipment: str = typer.Option("V", "--equipment", "-e", help="Equipment class code"),
    limit: int = typer.Option(20, "--limit", help="Maximum candidates to show"),
    catalog: CatalogOption = None,
    no_geocoder: NoGeocoderFlag = False,
    json: JsonFlag = False,
    plain: PlainFlag = False,
    verbose: VerboseFlag = False,
    quiet: QuietFlag = False,
) -> None:
    """List scored candidate cities within a radius of a city."""
    _setup_logging(verbose, quiet)
    try:
        from lanecrawl.engine import PairingEngine
        from lanecrawl.output import get_formatter
        from lanecrawl.query import parse_location
        from lanecrawl.scorer import rank, score_candidates
        from lanecrawl.source import CandidateSource

        if radius <= 0:
            raise ValueError(f"Radius must be positive, got {radius:g}")
        settings = load_settings()
        engine = PairingEngine(
            _open_catalog(settings, catalog),
            geocoder=_build_geocoder(settings, no_geocoder),
            settings=settings,
        )
        base = engine.resolve_base(parse_location(location))
        source = CandidateSource(
            engine.catalog, geocoder=engine.geocoder, sparse_threshold=settings.sparse_threshold
        )
        found = source.fetch_candidates(base, 0, radius, (), allow_base_market=True)
        ranked = rank(score_candidates(found, base, equipment.upper(), radius, engine.table))
        typer.echo(get_formatter(_get_format(json, plain)).format_candidates(base, ranked[:limit]))
    except (CatalogUnavailableError, ResolutionError, ValueError) as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# Config commands
# ---------------------------------------------------------------------------


@config_app.command(name="set-here-key")
def config_set_here_key(
    api_key: str = typer.Option(..., prompt=True, hide_input=True, help="HERE API key"),
) -> None:
    """Store the HERE API key in the system keyring."""
    try:
        store_here_key(api_key)
    except KeyringError as exc:
        _error_panel(f"Failed to save API key: {exc}")
        raise typer.Exit(code=1)
    typer.echo("HERE API key saved to system keyring.")


# ---------------------------------------------------------------------------
# Cache commands
# ---------------------------------------------------------------------------


@cache_app.command(name="clear")
def cache_clear() -> None:
    """Clear the geocoder response cache."""
    from lanecrawl.cache import ResponseCache

    try:
        settings = load_settings()
    except ValueError as exc:
        _fail(exc)
    removed = ResponseCache(settings.cache_dir).clear()
    typer.echo(f"Geocoder cache cleared ({removed} entries).")


if __name__ == "__main__":
    app()
