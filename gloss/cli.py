"""
CLI interface for gloss.

Usage:
    gloss log "fixed the auth bug" -t auth,infra
    gloss snap ./screenshot.png -c "new dashboard"
    gloss today
    gloss list 2025-10-06 --tags infra
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import Gloss
from .errors import GlossError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .timeline import filter_entries
from .types import LogEntry, entry_key, parse_tags_csv, parse_timestamp, validate_day
from .uploader import guess_mime_type

RULE = "─" * 50


# Set GLOSS_VERBOSE=1 to enable debug mode via environment
if os.environ.get("GLOSS_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import PackageNotFoundError, version
        try:
            typer.echo(f"gloss {version('gloss-log')}")
        except PackageNotFoundError:
            typer.echo("gloss (unknown version)")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="gloss",
    help="build. log. ship.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="GLOSS_STORE_PATH",
        help="Path to the store directory (default: ~/.gloss/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """build. log. ship."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

TagsFilterOption = Annotated[
    Optional[str],
    typer.Option("--tags", help="Filter by tags (comma-separated)")
]

ControllerOption = Annotated[
    Optional[str],
    typer.Option("--controller", help="Filter by controller (prefix match)")
]

LimitOption = Annotated[
    Optional[int],
    typer.Option("--limit", "-n", help="Maximum entries to show")
]


def _get_gloss() -> Gloss:
    """Open the store, handling errors gracefully."""
    import atexit

    try:
        gl = Gloss(_get_store_override())
    except (GlossError, ValueError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(gl.close)
    return gl


def _fail(action: str, e: Exception) -> None:
    typer.echo(f"❌ Failed to {action}: {e}", err=True)
    raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------

def _local_time(entry: LogEntry, tz_name: str, seconds: bool = False) -> str:
    from zoneinfo import ZoneInfo
    dt = parse_timestamp(entry.at).astimezone(ZoneInfo(tz_name))
    return dt.strftime("%H:%M:%S" if seconds else "%H:%M")


def _entry_dict(entry: LogEntry) -> dict:
    d = entry.to_dict()
    d["controller"] = entry.controller
    d["log_key"] = entry_key(entry)
    return d


def _format_entry(entry: LogEntry, tz_name: str) -> str:
    tag_str = f" [{','.join(entry.tags)}]" if entry.tags else ""
    controller_str = f" ({entry.controller[:8]}...)" if entry.controller else ""
    lines = [
        f"{_local_time(entry, tz_name)} {entry_key(entry)}{tag_str}{controller_str}",
        f"  {entry.text}",
    ]
    for asset in entry.assets:
        lines.append(f"  📎 {asset}")
    return "\n".join(lines) + "\n"


def _render_entries(entries: list[LogEntry], tz_name: str, header: str) -> None:
    if _get_json_output():
        typer.echo(json.dumps([_entry_dict(e) for e in entries], indent=2, ensure_ascii=False))
        return
    typer.echo(f"\n📝 {header}")
    typer.echo(RULE)
    for entry in entries:
        typer.echo(_format_entry(entry, tz_name))


def _warn_skipped(count: int) -> None:
    if count:
        typer.echo(
            f"⚠️  {count} stored version(s) could not be read; results may be incomplete",
            err=True,
        )


def _list_and_render(
    gl: Gloss,
    day: str,
    tags: Optional[str],
    controller: Optional[str],
    limit: Optional[int],
    label: str,
) -> None:
    tag_list = parse_tags_csv(tags) or None
    try:
        report = gl.reconstruct(day)
    except GlossError as e:
        _fail("list entries", e)
    _warn_skipped(len(report.skipped))
    rows = filter_entries(report.entries, tags=tag_list, controller=controller, limit=limit)

    if not rows:
        if _get_json_output():
            typer.echo("[]")
            return
        filter_str = f" with tags [{','.join(tag_list)}]" if tag_list else ""
        typer.echo(f"No entries found for {label}{filter_str}")
        return

    filter_str = f" (filtered by tags: {','.join(tag_list)})" if tag_list else ""
    _render_entries(rows, gl.config.timezone, f"Entries for {label}{filter_str}:")


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def log(
    message: Annotated[list[str], typer.Argument(help="What changed?")],
    tags: Annotated[Optional[str], typer.Option(
        "--tags", "-t",
        help="Tags like auth,infra"
    )] = None,
):
    """
    Log a message to today's chain.

    \b
    Examples:
        gloss log fixed the login redirect
        gloss log "shipped 1.2" -t release,infra
    """
    text = " ".join(message)
    tag_list = parse_tags_csv(tags)
    gl = _get_gloss()
    try:
        entry = gl.log(text, tags=tag_list)
    except GlossError as e:
        _fail("log", e)

    if _get_json_output():
        typer.echo(json.dumps(_entry_dict(entry), indent=2, ensure_ascii=False))
        return
    typer.echo(f"Logged ✓  Key: {entry_key(entry)}")
    typer.echo(f"Message: {text}")
    if tag_list:
        typer.echo(f"Tags: [{','.join(tag_list)}]")


@app.command()
def snap(
    path: Annotated[Path, typer.Argument(help="Local file", exists=True, dir_okay=False)],
    caption: Annotated[str, typer.Option(
        "--caption", "-c",
        help="Caption/alt text"
    )] = "",
):
    """Upload a file and log it with the asset URL."""
    data = path.read_bytes()
    mime = guess_mime_type(path)
    text = f"asset {path.name}" + (f" ({caption})" if caption else "")

    gl = _get_gloss()
    try:
        entry = gl.log_with_asset(text, data, mime, tags=["asset"])
    except GlossError as e:
        _fail("upload/log", e)

    if _get_json_output():
        typer.echo(json.dumps(_entry_dict(entry), indent=2, ensure_ascii=False))
        return
    typer.echo(f"Uploaded ✓  {entry.assets[0]}")
    typer.echo(f"Logged ✓   Key: {entry_key(entry)}")
    typer.echo(f"Caption: {caption or 'none'}")


@app.command("list")
def list_cmd(
    day: Annotated[str, typer.Argument(metavar="YYYY-MM-DD", help="Date to list entries for")],
    tags: TagsFilterOption = None,
    controller: ControllerOption = None,
    limit: LimitOption = None,
):
    """List entries for a specific day across all writers."""
    try:
        validate_day(day)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    gl = _get_gloss()
    _list_and_render(gl, day, tags, controller, limit, day)


@app.command()
def today(
    tags: TagsFilterOption = None,
    controller: ControllerOption = None,
    limit: LimitOption = None,
):
    """List today's entries (site timezone)."""
    gl = _get_gloss()
    day = gl.today()
    _list_and_render(gl, day, tags, controller, limit, f"today ({day})")


@app.command()
def get(
    key: Annotated[str, typer.Argument(help="Date key (YYYY-MM-DD)")],
):
    """Get all log entries for a date."""
    try:
        validate_day(key)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    gl = _get_gloss()
    try:
        report = gl.reconstruct(key)
    except GlossError as e:
        _fail("get entries", e)
    _warn_skipped(len(report.skipped))

    entries = report.entries
    if not entries:
        typer.echo(f"❌ No entries found for: {key}", err=True)
        raise typer.Exit(1)
    if _get_json_output():
        _render_entries(entries, gl.config.timezone, "")
        return
    typer.echo(f"\n📝 Log Entries: {key}")
    typer.echo(f"📊 Total logs: {len(entries)}")
    typer.echo(RULE)
    for entry in entries:
        typer.echo(_format_entry(entry, gl.config.timezone))


@app.command()
def remove(
    log_key: Annotated[str, typer.Argument(
        metavar="LOGKEY", help="Full log key (YYYY-MM-DD/HHMMSS-mmm)"
    )],
):
    """Remove one of your log entries by its key."""
    gl = _get_gloss()
    try:
        removed = gl.remove_entry(log_key)
    except (GlossError, ValueError) as e:
        _fail("remove", e)

    if removed:
        typer.echo(f"✅ Removed entry: {log_key}")
    else:
        typer.echo(f"❌ Entry not found: {log_key}")
        typer.echo("💡 Tip: You can only remove your own entries")


@app.command("remove-day")
def remove_day(
    day: Annotated[str, typer.Argument(metavar="DATE", help="Date (YYYY-MM-DD)")],
    confirm: Annotated[bool, typer.Option(
        "--confirm",
        help="Confirm deletion (required)"
    )] = False,
):
    """Remove all of your log entries for a date."""
    if not confirm:
        typer.echo("❌ This will remove ALL your logs for this date!", err=True)
        typer.echo(f"💡 Add --confirm flag to proceed: gloss remove-day {day} --confirm", err=True)
        raise typer.Exit(1)

    gl = _get_gloss()
    try:
        count = gl.remove_day(day)
    except (GlossError, ValueError) as e:
        _fail("remove day", e)

    if count:
        typer.echo(f"✅ Removed {count} entries for {day}")
    else:
        typer.echo(f"❌ No entries found for {day}")
        typer.echo("💡 Tip: You can only remove your own entries")


@app.command()
def update(
    log_key: Annotated[str, typer.Argument(
        metavar="LOGKEY", help="Full log key (YYYY-MM-DD/HHMMSS-mmm)"
    )],
    new_text: Annotated[str, typer.Argument(metavar="NEWTEXT", help="New text for the entry")],
    tags: Annotated[Optional[str], typer.Option(
        "--tags", "-t",
        help="New tags for the entry"
    )] = None,
):
    """Update the text (and optionally tags) of one of your entries."""
    tag_list = parse_tags_csv(tags) if tags is not None else None
    gl = _get_gloss()
    try:
        updated = gl.update_entry_by_key(log_key, new_text, tags=tag_list)
    except (GlossError, ValueError) as e:
        _fail("update", e)

    if updated:
        typer.echo(f"✅ Updated entry: {log_key}")
        typer.echo(f'📝 New: "{new_text}"')
        if tag_list:
            typer.echo(f"🏷️  Tags: [{','.join(tag_list)}]")
    else:
        typer.echo(f"❌ Entry not found: {log_key}")
        typer.echo("💡 Tip: You can only update your own entries")


@app.command()
def history(
    log_key: Annotated[str, typer.Argument(
        metavar="LOGKEY", help="Full log key (YYYY-MM-DD/HHMMSS-mmm)"
    )],
):
    """View every version of one of your entries."""
    gl = _get_gloss()
    try:
        versions = gl.get_log_history(log_key)
    except (GlossError, ValueError) as e:
        _fail("get history", e)

    if not versions:
        typer.echo(f"❌ No history found for: {log_key}")
        return
    if _get_json_output():
        typer.echo(json.dumps([_entry_dict(v) for v in versions], indent=2, ensure_ascii=False))
        return

    typer.echo(f"\n📚 History for: {log_key}")
    typer.echo(f"📊 Total versions: {len(versions)}")
    typer.echo(RULE)
    for index, entry in enumerate(versions):
        label = " (current)" if index == 0 else f" (v{len(versions) - index})"
        tag_str = f" [{','.join(entry.tags)}]" if entry.tags else ""
        typer.echo(f"{_local_time(entry, gl.config.timezone, seconds=True)}{label}{tag_str}")
        typer.echo(f"  {entry.text}")
        for asset in entry.assets:
            typer.echo(f"  📎 {asset}")
        typer.echo()


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="gloss CLI", store_path=_get_store_override())
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
