"""CLI interface for chatworkspace."""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager

import click

from . import __version__
from .config import APP_URL, HASH_SALT, REMOTE_URL, SERVER_HOST, SERVER_PORT, SHARED_DIR, SQLITE_PATH
from .errors import ChatWorkspaceError


def _store():
    from .storage import AnnotationStore

    return AnnotationStore(SQLITE_PATH)


@contextmanager
def _remote():
    from .remote import FileBlobStore, HttpBlobStore

    if REMOTE_URL:
        with HttpBlobStore(REMOTE_URL) as remote:
            yield remote
    else:
        yield FileBlobStore(SHARED_DIR)


def _check_id(conversation_id: str) -> str:
    from .hashing import is_valid_identity

    if not is_valid_identity(conversation_id):
        raise click.BadParameter("Invalid conversation ID format", param_hint="CONVERSATION_ID")
    return conversation_id


def _echo_chat(session, bundle, outline: bool = False):
    from .render import detect_links, render_outline, render_transcript

    click.echo()
    click.echo(click.style(f"Chat {session.conversation_id}", bold=True))
    click.echo(f"  Turns:  {len(session.turns)}")
    if bundle.settings.font_size:
        click.echo(f"  Font:   {bundle.settings.font_size:g}px")
    if bundle.notes.text:
        click.echo(f"  Notes:  {bundle.notes.text}")
        for url in detect_links(bundle.notes.text):
            click.echo(f"          🔗 {url}")
    click.echo()
    if outline:
        click.echo(render_outline(session.turns, bundle))
    else:
        click.echo(render_transcript(session.turns, bundle))


@click.group()
@click.version_option(version=__version__, prog_name="chatworkspace")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
def cli(verbose: bool):
    """chatworkspace: import, annotate and share ChatGPT conversations.

    Paste a conversation's HTML into a file, load it, then keep outline
    titles, comments, indents and notes for it. Share the result and reopen
    it anywhere with its conversation ID.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command()
@click.argument("html_file", type=click.File("r", encoding="utf-8"))
@click.option("--salt", default=HASH_SALT, show_default=True, help="Salt for the conversation ID")
@click.option("--show/--no-show", default=False, help="Print the outline after loading")
def load(html_file, salt: str, show: bool):
    """Load a chat from saved ChatGPT HTML ("-" reads stdin).

    Get the HTML by running this in the browser console on a ChatGPT chat:

        document.querySelector('[data-turn-id]').parentElement.innerHTML
    """
    from .importer import load_chat

    store = _store()
    try:
        session = load_chat(store, html_file.read(), salt=salt)
        bundle = store.load_bundle(session.conversation_id)
    except ChatWorkspaceError as e:
        raise click.ClickException(str(e))
    finally:
        store.close()

    click.echo(click.style("Chat loaded!", fg="green", bold=True))
    click.echo(f"  ID:     {session.conversation_id}")
    click.echo(f"  Turns:  {len(session.turns)}")
    click.echo(f"  Open:   {APP_URL}{session.open_query}")
    if show:
        _echo_chat(session, bundle, outline=True)


@cli.command()
@click.argument("conversation_id")
@click.option("--outline", is_flag=True, help="Show the outline instead of the transcript")
def show(conversation_id: str, outline: bool):
    """Show a chat stored locally (falls back to its shared copy)."""
    _resolve(f"/?open={_check_id(conversation_id)}", outline=outline)


@cli.command()
@click.argument("url")
@click.option("--outline", is_flag=True, help="Show the outline instead of the transcript")
def resolve(url: str, outline: bool):
    """Open a chat link containing ?shared=<id> or ?open=<id>."""
    _resolve(url, outline=outline)


def _resolve(url: str, outline: bool = False):
    from .sync import AddressBar, ResolveState, SyncController

    def renderer(session, bundle):
        _echo_chat(session, bundle, outline=outline)

    store = _store()
    address = AddressBar(url)
    try:
        with _remote() as remote:
            controller = SyncController(store, remote, renderer=renderer, salt=HASH_SALT)
            resolution = controller.resolve(address)
    finally:
        store.close()

    if resolution.state is ResolveState.IDLE:
        raise click.ClickException("URL has no ?shared= or ?open= parameter.")
    if resolution.state is ResolveState.FAILED:
        hint = " Try again later." if resolution.retryable else ""
        raise click.ClickException(resolution.message + hint)
    if resolution.message:
        click.echo(resolution.message)
    click.echo(f"Address: {address}", err=True)


@cli.command()
@click.argument("conversation_id")
def share(conversation_id: str):
    """Publish a chat and its annotations, and print the share link."""
    from .sync import SyncController

    _check_id(conversation_id)
    store = _store()
    try:
        if not store.load_raw_source(conversation_id):
            raise click.ClickException("Chat not found locally. Load it first.")
        with _remote() as remote:
            result = SyncController(store, remote).publish(conversation_id)
    except ChatWorkspaceError as e:
        raise click.ClickException(f"Failed to share: {e}")
    finally:
        store.close()

    share_url = f"{APP_URL}?shared={result.conversation_id}"
    if result.is_new:
        click.echo(click.style("Share Link Created!", fg="green", bold=True))
        click.echo("Your chat is ready to share with all customizations.")
    else:
        click.echo(click.style("Share Content Updated!", fg="green", bold=True))
        click.echo("Your shared chat has been updated with the latest customizations.")
    click.echo(f"  {share_url}")


@cli.command()
@click.argument("conversation_id")
@click.argument("index", type=click.IntRange(min=1))
@click.argument("text", required=False, default="")
def outline(conversation_id: str, index: int, text: str):
    """Set the outline title of turn INDEX (1-based). Omit TEXT to restore the default."""
    from .storage import Facet

    store = _store()
    try:
        store.save_turn_entry(_check_id(conversation_id), Facet.OUTLINE, index - 1, text.strip())
    finally:
        store.close()
    click.echo(f"Saved outline for turn {index}")


@cli.command()
@click.argument("conversation_id")
@click.argument("index", type=click.IntRange(min=1))
@click.option("--heading", default="", help="Comment shown above the turn in the outline")
@click.option("--turn", "turn_text", default="", help="Comment attached to the turn itself")
def comment(conversation_id: str, index: int, heading: str, turn_text: str):
    """Comment on turn INDEX. Both comments empty removes the entry."""
    from .models import Comment
    from .storage import Facet

    store = _store()
    try:
        store.save_turn_entry(
            _check_id(conversation_id),
            Facet.COMMENTS,
            index - 1,
            Comment(heading=heading, turn=turn_text),
        )
    finally:
        store.close()
    click.echo(f"Saved comments for turn {index}")


@cli.command()
@click.argument("conversation_id")
@click.argument("index", type=click.IntRange(min=1))
@click.argument("level", type=click.IntRange(min=0))
def indent(conversation_id: str, index: int, level: int):
    """Set the outline indent LEVEL of turn INDEX (0 removes it)."""
    from .storage import Facet

    store = _store()
    try:
        store.save_turn_entry(_check_id(conversation_id), Facet.INDENTS, index - 1, level)
    finally:
        store.close()
    click.echo(f"Saved indent for turn {index}: {level}")


@cli.command()
@click.argument("conversation_id")
@click.argument("text", required=False)
def notes(conversation_id: str, text: str | None):
    """Show the notes for a chat, or replace them with TEXT."""
    from .render import detect_links

    _check_id(conversation_id)
    store = _store()
    try:
        if text is None:
            saved = store.load_notes(conversation_id)
        else:
            saved = store.save_notes(conversation_id, text)
    finally:
        store.close()

    click.echo(saved.text or "(no notes)")
    for url in detect_links(saved.text):
        click.echo(f"  🔗 {url}")
    if saved.last_updated:
        click.echo(f"Last updated: {saved.last_updated}", err=True)


@cli.command()
@click.argument("conversation_id")
@click.confirmation_option(prompt="Reset all outline titles, comments and indents?")
def reset(conversation_id: str):
    """Reset the outline to defaults and remove all comments and indents."""
    store = _store()
    try:
        store.reset_all(_check_id(conversation_id))
    finally:
        store.close()
    click.echo("Reset all outline items to defaults")


@cli.command("list")
def list_cmd():
    """List chats that have been opened on this machine."""
    if not SQLITE_PATH.exists():
        click.echo("No chats yet. Load one first:")
        click.echo("  chatworkspace load chat.html")
        return

    store = _store()
    try:
        for conversation_id in store.known_conversations():
            cached = "✓" if store.load_raw_source(conversation_id) else " "
            click.echo(f"{cached} {conversation_id}")
    finally:
        store.close()


@cli.command()
@click.option("--host", default=SERVER_HOST, show_default=True)
@click.option("--port", default=SERVER_PORT, show_default=True, type=int)
def serve(host: str, port: int):
    """Run the share server, storing shared chats in the shared directory."""
    from .server import run

    click.echo(f"Storing shared chats in {SHARED_DIR}", err=True)
    run(host, port, SHARED_DIR)
