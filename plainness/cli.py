"""CLI entry point for plainness."""

from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import click


# Default config template
CONFIG_TEMPLATE = """\
model: claude-sonnet-4-5-20250929

service:
  backend: http  # http | cli
  base_url: https://api.anthropic.com
  api_key_env: ANTHROPIC_API_KEY
  anthropic_version: "2023-06-01"
  timeout: 120
  agent_command: null  # e.g. "claude --print" when backend is cli

author:
  name: null
  description: null

analysis:
  max_tokens: 4000
  suggestion_limit: 10  # or: exhaustive
  exhaustive_range: "25-40"
  anchor_strategy: first  # first | sequential | unique
  preview_chars: 300

prepare:
  max_words_per_segment: 1500
  single_max_tokens: 8000
  segment_max_tokens: 6000

chat:
  max_tokens: 4000
  context_messages: 10
  document_preview_chars: 3000

persistence:
  db: .plainness/plainness.db
  content_delay_ms: 2000
  chat_delay_ms: 1000
  preferences_delay_ms: 500
  chat_history_limit: 50

versions:
  max_versions: 5

preferences:
  active_categories: [clarity]
"""

project_root_option = click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Project root directory (default: cwd).",
)


def _setup_logging(verbose: bool = False) -> None:
    import logging

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@contextmanager
def _open_session(project_root: str, writer: Any = None) -> Iterator[Any]:
    """Load config and persisted state; flush pending writes on exit."""
    from plainness.config import ConfigError, load_config, resolve_db_path
    from plainness.errors import PersistenceFailure
    from plainness.service import create_service
    from plainness.session import EditorSession
    from plainness.store.db import MemoryStore, SQLiteStore
    from plainness.store.gateway import PersistenceGateway

    root = Path(project_root)
    try:
        config = load_config(root)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    try:
        backend: Any = SQLiteStore(resolve_db_path(config, root))
    except PersistenceFailure as exc:
        click.echo(f"Warning: {exc}. Working in memory only.", err=True)
        backend = MemoryStore()

    gateway = PersistenceGateway(backend, config["persistence"]["chat_history_limit"])
    session = EditorSession(config, gateway, create_service(config), writer=writer)
    try:
        yield session
    finally:
        session.close()


def _parse_limit(value: str | None) -> int | str | None:
    if value is None:
        return None
    if value == "exhaustive":
        return value
    try:
        limit = int(value)
    except ValueError:
        raise click.BadParameter("must be a positive integer or 'exhaustive'") from None
    if limit < 1:
        raise click.BadParameter("must be a positive integer or 'exhaustive'")
    return limit


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Plainness: editorial suggestions and version history for your writing."""
    if verbose:
        _setup_logging(verbose=True)


@cli.command()
@project_root_option
def init(project_root: str) -> None:
    """Initialize .plainness/ directory with a default config."""
    root = Path(project_root)
    state_dir = root / ".plainness"

    if state_dir.exists():
        click.echo(f".plainness/ already exists at {state_dir}")
        raise SystemExit(1)

    state_dir.mkdir(parents=True)
    config_path = state_dir / "config.yaml"
    config_path.write_text(CONFIG_TEMPLATE)
    click.echo(f"Created {config_path}")

    # Load config through the standard path to validate it
    from plainness.config import load_config
    load_config(root)

    click.echo("\nPlainness initialized. Edit .plainness/config.yaml to customize.")


@cli.command()
@project_root_option
def status(project_root: str) -> None:
    """Show document, suggestion and version status."""
    with _open_session(project_root) as session:
        click.echo(f"Words: {session.word_count:,}")
        click.echo(f"Focus: {', '.join(session.categories) or '(none)'}")
        click.echo(f"Pending suggestions: {len(session.suggestions)}")
        click.echo(f"Versions: {len(session.versions())}")
        last = session.last_saved()
        click.echo(f"Last saved: {last.isoformat() if last else 'never'}")


@cli.command("open")
@project_root_option
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def open_cmd(project_root: str, file: str) -> None:
    """Replace the working document with FILE (current text is versioned first)."""
    text = Path(file).read_text()
    with _open_session(project_root) as session:
        session.replace_document(text, "Before opening " + Path(file).name)
        click.echo(f"Opened {file} ({session.word_count:,} words)")


@cli.command()
@project_root_option
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def edit(project_root: str, file: str) -> None:
    """Record FILE as an edit of the working document (suggestions are kept)."""
    text = Path(file).read_text()
    with _open_session(project_root) as session:
        before = len(session.suggestions)
        session.edit(text)
        after = len(session.suggestions)
        click.echo(f"Updated document ({session.word_count:,} words)")
        if after < before:
            click.echo(f"Discarded {before - after} suggestion(s) invalidated by the edit")


@cli.command()
@project_root_option
@click.option("--plain", is_flag=True, help="Print the document without suggestion markers.")
def show(project_root: str, plain: bool) -> None:
    """Print the working document, marking pending suggestions."""
    with _open_session(project_root) as session:
        if plain:
            click.echo(session.document)
            return
        out = []
        for seg in session.render():
            if seg.suggestion is None:
                out.append(seg.text)
            else:
                out.append(click.style(seg.text, underline=True) + f"[{seg.suggestion.id}]")
        click.echo("".join(out))


@cli.command()
@project_root_option
@click.argument("categories", nargs=-1)
def focus(project_root: str, categories: tuple[str, ...]) -> None:
    """Show or set the active editorial focus areas."""
    from plainness.categories import CATEGORIES, CATEGORY_IDS

    unknown = [c for c in categories if c not in CATEGORY_IDS]
    if unknown:
        raise click.BadParameter(
            f"unknown categories {unknown}; choose from {', '.join(CATEGORY_IDS)}",
            param_hint="CATEGORIES",
        )
    with _open_session(project_root) as session:
        if categories:
            session.set_categories(list(categories))
        active = set(session.categories)
        for cat in CATEGORIES:
            mark = "*" if cat.id in active else " "
            click.echo(f" {mark} {cat.id:<12} {cat.name} - {cat.description}")


@cli.command()
@project_root_option
@click.option("--limit", default=None, help="Desired suggestion count, or 'exhaustive'.")
def analyze(project_root: str, limit: str | None) -> None:
    """Ask the model for editorial suggestions on the working document."""
    from plainness.errors import PlainnessError

    parsed = _parse_limit(limit)
    with _open_session(project_root) as session:
        try:
            found = session.analyze(parsed)
        except PlainnessError as exc:
            click.echo(f"Analysis failed: {exc}")
            raise SystemExit(1)
        click.echo(f"{len(found)} suggestion(s)")
        _echo_suggestions(found)


def _echo_suggestions(suggestions: list[Any]) -> None:
    for s in suggestions:
        click.echo(f"\n#{s.id} [{s.category}] @{s.start}-{s.end}")
        click.echo(f"  - {s.original}")
        click.echo(f"  + {s.replacement}")
        if s.reason:
            click.echo(f"  ({s.reason})")


@cli.command()
@project_root_option
def suggestions(project_root: str) -> None:
    """List pending suggestions in document order."""
    with _open_session(project_root) as session:
        pending = sorted(session.suggestions, key=lambda s: s.start)
        if not pending:
            click.echo("No pending suggestions.")
            return
        _echo_suggestions(pending)


@cli.command()
@project_root_option
@click.argument("suggestion_id", type=int)
def accept(project_root: str, suggestion_id: int) -> None:
    """Apply suggestion SUGGESTION_ID to the document."""
    with _open_session(project_root) as session:
        accepted = session.accept(suggestion_id)
        if accepted is None:
            click.echo(f"Suggestion {suggestion_id} not found or no longer applies.")
            raise SystemExit(1)
        click.echo(f"Applied #{accepted.id}: {accepted.original!r} -> {accepted.replacement!r}")


@cli.command()
@project_root_option
@click.argument("suggestion_id", type=int)
def dismiss(project_root: str, suggestion_id: int) -> None:
    """Dismiss suggestion SUGGESTION_ID without changing the document."""
    with _open_session(project_root) as session:
        if session.dismiss(suggestion_id) is None:
            click.echo(f"Suggestion {suggestion_id} not found.")
            raise SystemExit(1)
        click.echo(f"Dismissed #{suggestion_id}")


@cli.command()
@project_root_option
def prepare(project_root: str) -> None:
    """Convert footnotes to MLA citations and align terminology (whole document)."""
    from plainness.errors import PlainnessError

    with _open_session(project_root) as session:
        try:
            session.prepare(on_progress=click.echo)
        except PlainnessError as exc:
            click.echo(f"Document preparation failed: {exc}")
            click.echo("Your original text is unchanged.")
            raise SystemExit(1)
        click.echo(f"Document prepared ({session.word_count:,} words). Backup saved to versions.")


@cli.command()
@project_root_option
@click.argument("message")
def chat(project_root: str, message: str) -> None:
    """Discuss the working document with the assistant."""
    from plainness.errors import SessionBusy

    with _open_session(project_root) as session:
        try:
            reply = session.chat(message)
        except SessionBusy as exc:
            raise click.ClickException(str(exc)) from exc
        if reply is None:
            click.echo(session.chat_history[-1]["content"])
            raise SystemExit(1)
        click.echo(reply)


@cli.command()
@project_root_option
@click.option("--last", "last_n", type=int, default=10, help="Number of messages to show.")
def history(project_root: str, last_n: int) -> None:
    """Show recent chat messages."""
    with _open_session(project_root) as session:
        for m in session.chat_history[-last_n:]:
            click.echo(f"[{m['role']}] {m['content']}\n")


@cli.command()
@project_root_option
def new(project_root: str) -> None:
    """Start a new, empty document (current work is saved to versions)."""
    with _open_session(project_root) as session:
        session.new_document()
        click.echo("Started a new document.")


# ------------------------------------------------------------------
# Versions
# ------------------------------------------------------------------


@cli.group()
def versions() -> None:
    """Manage the document version history."""


@versions.command("list")
@project_root_option
def versions_list(project_root: str) -> None:
    """List stored versions, newest first."""
    with _open_session(project_root) as session:
        stored = session.versions()
        if not stored:
            click.echo("No saved versions yet.")
            return
        for v in stored:
            click.echo(f"{v.id}  {v.label}  ({v.word_count} words, {v.created_at})")


@versions.command("save")
@project_root_option
@click.option("--label", default=None, help="Version label (default: 'Version N').")
def versions_save(project_root: str, label: str | None) -> None:
    """Snapshot the current document."""
    with _open_session(project_root) as session:
        v = session.save_version(label)
        click.echo(f'Saved version {v.id}: "{v.label}" ({v.word_count} words)')


@versions.command("restore")
@project_root_option
@click.argument("version_id", type=int)
def versions_restore(project_root: str, version_id: int) -> None:
    """Replace the document with VERSION_ID."""
    with _open_session(project_root) as session:
        if session.restore_version(version_id) is None:
            click.echo(f"Version {version_id} not found.")
            raise SystemExit(1)
        click.echo(f"Restored version {version_id}.")


@versions.command("delete")
@project_root_option
@click.argument("version_id", type=int)
def versions_delete(project_root: str, version_id: int) -> None:
    """Delete VERSION_ID (no-op if it does not exist)."""
    with _open_session(project_root) as session:
        if session.delete_version(version_id):
            click.echo(f"Deleted version {version_id}.")
        else:
            click.echo(f"Version {version_id} not found; nothing deleted.")


# ------------------------------------------------------------------
# Backup
# ------------------------------------------------------------------


@cli.command()
@project_root_option
@click.argument("file", type=click.Path(dir_okay=False, writable=True))
def backup(project_root: str, file: str) -> None:
    """Export all stored state to a JSON FILE."""
    with _open_session(project_root) as session:
        data = session.export_all()
    Path(file).write_text(json.dumps(data, indent=2, ensure_ascii=False))
    click.echo(f"Backup written to {file}")


@cli.command("restore-backup")
@project_root_option
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def restore_backup(project_root: str, file: str) -> None:
    """Import stored state from a JSON FILE written by backup."""
    from plainness.config import ConfigError, load_config, resolve_db_path
    from plainness.errors import PersistenceFailure
    from plainness.store.db import SQLiteStore
    from plainness.store.gateway import PersistenceGateway

    try:
        data = json.loads(Path(file).read_text())
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Not a valid backup: {exc}") from exc

    root = Path(project_root)
    try:
        config = load_config(root)
        gateway = PersistenceGateway(
            SQLiteStore(resolve_db_path(config, root)),
            config["persistence"]["chat_history_limit"],
        )
    except (ConfigError, PersistenceFailure) as exc:
        raise click.ClickException(str(exc)) from exc

    if not gateway.import_all(data):
        click.echo("Backup imported with errors.")
        raise SystemExit(1)
    click.echo("Backup imported.")


# ------------------------------------------------------------------
# Watch
# ------------------------------------------------------------------


@cli.command()
@project_root_option
@click.argument("file", type=click.Path(exists=True, dir_okay=False, resolve_path=True))
def watch(project_root: str, file: str) -> None:
    """Mirror edits of FILE into the working document until interrupted."""
    import logging
    import signal
    import time

    from plainness.store.debounce import DebouncedWriter
    from plainness.store.watcher import DocumentWatcher

    _setup_logging()
    log = logging.getLogger("plainness.watch")

    writer = DebouncedWriter()
    with _open_session(project_root, writer=writer) as session:
        session.edit(Path(file).read_text())
        writer.start()
        watcher = DocumentWatcher(Path(file), session.edit)
        watcher.start()

        running = True

        def _shutdown(signum: int, frame: object) -> None:
            nonlocal running
            log.info("Received signal %d, shutting down...", signum)
            running = False

        signal.signal(signal.SIGINT, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)

        click.echo(f"Watching {file} (Ctrl-C to stop)...")
        try:
            while running:
                time.sleep(0.5)
        finally:
            watcher.stop()
    click.echo("Stopped.")
