"""Command-line interface for Sitch."""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from sitch.aggregator import UpdateAggregator
from sitch.config import DEFAULT_CONFIG_PATH, Config
from sitch.errors import ConfigError, PersistenceError, SitchError
from sitch.models import Source, SourceKind, ensure_utc
from sitch.search_flow import InteractiveSearchFlow, TerminalPrompt
from sitch.sinks import NotificationSink, OutputSink, TextSink, format_timestamp
from sitch.sources import PluginRegistry, SearchCandidate, create_registry
from sitch.sources.base import new_source
from sitch.store import Store, run_lock, source_to_dict

logger = logging.getLogger(__name__)


console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)

# Exit code for a run cut short with Ctrl-C
EXIT_INTERRUPTED = 130


@dataclass
class Context:
    config: Config
    config_path: str


def fail(message: str) -> None:
    err_console.print(f"[red]{escape(message)}[/red]")
    sys.exit(1)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    # Set log levels for noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


@contextmanager
def open_store(config: Config) -> Iterator[Store]:
    """Open the store under the run lock, exiting on persistence errors."""
    try:
        with run_lock(config.lock_path, config.lock_timeout), config.create_store() as store:
            yield store
    except PersistenceError as e:
        fail(str(e))


def create_plugins(config: Config) -> PluginRegistry:
    return create_registry(config.resolved_credentials(), timeout=config.fetch_timeout)


def format_watermark(store: Store, source: Source) -> str:
    watermark = store.get_watermark(source.key)
    return format_timestamp(watermark) if watermark else "never"


# =============================================================================
# Parameter types
# =============================================================================


class SinceTime(click.ParamType):
    """A local time: today, yesterday, MM/DD/YYYY or "HH:MM AM|PM MM/DD/YYYY"."""

    name = "time"

    FORMATS = ["%m/%d/%Y", "%I:%M %p %m/%d/%Y"]

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> datetime:
        if isinstance(value, datetime):
            return value

        text = value.strip()
        midnight = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
        if text.lower() == "today":
            return ensure_utc(midnight.astimezone())
        if text.lower() == "yesterday":
            return ensure_utc((midnight - timedelta(days=1)).astimezone())

        for fmt in self.FORMATS:
            try:
                return ensure_utc(datetime.strptime(text.upper(), fmt).astimezone())
            except ValueError:
                continue

        self.fail(
            f"{value!r} isn't a time; use today, yesterday, MM/DD/YYYY or \"HH:MM AM MM/DD/YYYY\"",
            param,
            ctx,
        )


SINCE_TIME = SinceTime()


# =============================================================================
# Main command: one aggregation cycle
# =============================================================================


@click.group(invoke_without_command=True)
@click.option("--notify", is_flag=True, help="Also send a desktop notification per update")
@click.option("--notify-only", is_flag=True, help="Only send desktop notifications")
@click.option("-q", "--quiet", is_flag=True, help="Print only the name, title and link per update")
@click.option("-t", "--since-time", type=SINCE_TIME, help="Report updates since this time")
@click.option("-L", "--last-checked", is_flag=True, help="Print when sitch last ran successfully")
@click.option("-c", "--config", "config_path", default=DEFAULT_CONFIG_PATH, show_default=True,
              help="Path to the config file")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
@click.version_option(package_name="sitch")
@click.pass_context
def main(
    ctx: click.Context,
    notify: bool,
    notify_only: bool,
    quiet: bool,
    since_time: datetime | None,
    last_checked: bool,
    config_path: str,
    verbose: bool,
) -> None:
    """Sitch - check your channels, feeds, anime, manga and artists for updates."""
    setup_logging(verbose)

    try:
        config = Config.load(config_path)
    except ConfigError as e:
        fail(str(e))
    ctx.obj = Context(config=config, config_path=config_path)

    if ctx.invoked_subcommand is not None:
        return

    if last_checked:
        show_last_checked(config)
        return

    sinks: list[OutputSink] = []
    if not notify_only:
        sinks.append(TextSink(console=console, err_console=err_console, quiet=quiet))
    if notify or notify_only:
        sinks.append(NotificationSink(wait=config.notify_wait))

    plugins = create_plugins(config)
    with open_store(config) as store:
        aggregator = UpdateAggregator(
            store,
            plugins,
            max_workers=config.max_workers,
            fetch_timeout=config.fetch_timeout,
        )
        result = aggregator.run(sinks, since=since_time)

    for error in result.render_errors:
        err_console.print(f"[red]Couldn't deliver updates, they will be reported again: {escape(str(error))}[/red]")

    if result.report.interrupted:
        sys.exit(EXIT_INTERRUPTED)


def show_last_checked(config: Config) -> None:
    with open_store(config) as store:
        last_run = store.get_last_run()
    if last_run is None:
        fail("sitch hasn't successfully checked for updates yet.")
    console.print(last_run.astimezone().strftime("%H:%M:%S %m/%d/%y"))


# =============================================================================
# Per-kind source commands
# =============================================================================


def _find_source(sources: list[Source], ref: str) -> Source | None:
    """Find a source by 1-based position, ID, identity or exact name."""
    if ref.isdigit() and 1 <= int(ref) <= len(sources):
        return sources[int(ref) - 1]
    for source in sources:
        if ref in (source.id, source.identity, source.name):
            return source
    return None


def sources_from_edit(kind: SourceKind, data: Any, existing: list[Source]) -> list[Source]:
    """Turn edited JSON back into sources.

    Entries need an identity and a name. Entries with an unknown or missing
    ID are new sources.

    Raises:
        ConfigError: If the JSON isn't a list of valid entries.
    """
    if not isinstance(data, list):
        raise ConfigError("Expected a JSON list of sources")

    by_id = {s.id: s for s in existing}
    sources = []
    seen_keys = set()

    for entry in data:
        if not isinstance(entry, dict):
            raise ConfigError(f"Expected a JSON object, got {entry!r}")
        identity = str(entry.get("identity") or "").strip()
        name = str(entry.get("name") or "").strip()
        if not identity or not name:
            raise ConfigError(f"Every source needs an identity and a name: {entry!r}")
        params = entry.get("params") or {}
        if not isinstance(params, dict):
            raise ConfigError(f"params must be a JSON object: {entry!r}")

        previous = by_id.get(entry.get("id"))
        if previous and previous.identity == identity:
            source = Source(
                id=previous.id,
                kind=kind,
                identity=identity,
                name=name,
                created_at=previous.created_at,
                params=params,
                enabled=bool(entry.get("enabled", True)),
            )
        else:
            source = new_source(kind, identity, name, params)

        if source.key in seen_keys:
            raise ConfigError(f"{identity!r} is listed more than once")
        seen_keys.add(source.key)
        sources.append(source)

    return sources


def make_kind_group(kind: SourceKind) -> click.Group:
    """Build the add/list/edit/remove/search commands for one kind."""

    @click.group(name=kind.value, help=f"Manage {kind.label} sources.")
    def group() -> None:
        pass

    @group.command("add")
    @click.argument("identity")
    @click.option("-n", "--name", help="Display name (defaults to the identity)")
    @click.pass_obj
    def add(obj: Context, identity: str, name: str | None) -> None:
        """Follow a source by its ID or URL."""
        adapter = create_plugins(obj.config).adapter(kind)
        candidate = SearchCandidate(id=identity.strip(), name=name or identity.strip(), kind=kind)
        try:
            source = adapter.source_from_candidate(candidate)
            adapter.validate(source)
        except SitchError as e:
            fail(str(e))

        with open_store(obj.config) as store:
            try:
                store.add_source(source, watermark=source.created_at)
            except ConfigError as e:
                fail(str(e))
        console.print(f"[green]Added {kind.label} source: {escape(source.name)}[/green]")

    @group.command("list")
    @click.pass_obj
    def list_sources(obj: Context) -> None:
        """List followed sources."""
        with open_store(obj.config) as store:
            sources = store.list_sources(kind)
            if not sources:
                console.print(f"[dim]No {kind.label} sources. Use 'sitch {kind.value} search' to add one.[/dim]")
                return

            table = Table(show_header=True)
            table.add_column("#", justify="right")
            table.add_column("Name")
            table.add_column(kind.variant.identity_label, style="dim")
            table.add_column("Last Checked")

            for index, source in enumerate(sources, start=1):
                name = escape(source.name) if source.enabled else f"[dim]{escape(source.name)} (disabled)[/dim]"
                table.add_row(str(index), name, escape(source.identity), format_watermark(store, source))

        console.print(table)

    @group.command("edit")
    @click.pass_obj
    def edit(obj: Context) -> None:
        """Edit the sources as JSON in $EDITOR."""
        with open_store(obj.config) as store:
            existing = store.list_sources(kind)
            text = json.dumps([source_to_dict(s) for s in existing], indent=2)
            edited = click.edit(text, extension=".json")
            if edited is None or edited.strip() == text.strip():
                console.print("[dim]No changes made.[/dim]")
                return

            try:
                sources = sources_from_edit(kind, json.loads(edited), existing)
            except json.JSONDecodeError as e:
                fail(f"Couldn't parse the edited sources as JSON: {e}")
            except ConfigError as e:
                fail(str(e))

            store.replace_kind(kind, sources)
        console.print(f"[green]Saved {len(sources)} {kind.label} sources[/green]")

    @group.command("remove")
    @click.argument("ref")
    @click.pass_obj
    def remove(obj: Context, ref: str) -> None:
        """Stop following a source (by list number, ID, identity or name)."""
        with open_store(obj.config) as store:
            source = _find_source(store.list_sources(kind), ref)
            if source is None:
                fail(f"No {kind.label} source matches {ref!r}")
            store.remove_source(source.id)
        console.print(f"[green]Removed {kind.label} source: {escape(source.name)}[/green]")

    @group.command("search")
    @click.argument("query", nargs=-1)
    @click.option("--limit", default=5, show_default=True, help="Number of results to show")
    @click.pass_obj
    def search(obj: Context, query: tuple[str, ...], limit: int) -> None:
        """Search for a source to follow and add it."""
        plugin = create_plugins(obj.config).get(kind)
        with open_store(obj.config) as store:
            try:
                flow = InteractiveSearchFlow(plugin, store, TerminalPrompt(console), limit=limit)
                flow.run(" ".join(query) or None)
            except ConfigError as e:
                fail(str(e))

    return group


for _kind in SourceKind:
    main.add_command(make_kind_group(_kind))


# =============================================================================
# YouTube API key
# =============================================================================


youtube = main.commands[SourceKind.YOUTUBE.value]


@youtube.group("apikey")
def apikey() -> None:
    """Manage the YouTube Data API key."""
    pass


@apikey.command("set")
@click.option("-k", "--key", required=True, help="YouTube Data API key")
@click.pass_obj
def apikey_set(obj: Context, key: str) -> None:
    """Store the API key in the config file."""
    obj.config.credentials["youtube"] = key.strip()
    try:
        obj.config.save(obj.config_path)
    except PersistenceError as e:
        fail(str(e))
    console.print("[green]YouTube API key saved[/green]")


@apikey.command("clear")
@click.pass_obj
def apikey_clear(obj: Context) -> None:
    """Remove the stored API key."""
    if obj.config.credentials.pop("youtube", None) is None:
        console.print("[dim]No YouTube API key was stored.[/dim]")
        return
    try:
        obj.config.save(obj.config_path)
    except PersistenceError as e:
        fail(str(e))
    console.print("[green]YouTube API key cleared[/green]")


@apikey.command("show")
@click.pass_obj
def apikey_show(obj: Context) -> None:
    """Print the API key in use."""
    key = obj.config.credential("youtube")
    if not key:
        fail("No YouTube API key is set. Use 'sitch youtube apikey set -k <key>'.")
    console.print(escape(key))


if __name__ == "__main__":
    main()
