from __future__ import annotations

import logging
import re

import typer
from rich import print
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from codex import store
from codex.integrity import find_dangling_references
from codex.models import Chapter, Snapshot, new_id
from config import DB_PATH, SNAPSHOT_KEY
from database.db import Database
from editor.mentions import auto_tag, find_mentions
from editor.render import PREVIEW, WRITE, clean_preview, render_chapter
from logger_config import setup_logging
from utils.files import read_chapter_file

logger = logging.getLogger(__name__)

app = typer.Typer(add_completion=False, help="Story codex: chapters, characters and timeline.")
console = Console()

DbOption = typer.Option(DB_PATH, "--db", help="SQLite file holding the saved snapshot.")
_MARK_RE = re.compile(r"<mark[^>]*>(.*?)</mark>", re.S)


def _load(db: Database) -> Snapshot:
    snap = db.load_snapshot(SNAPSHOT_KEY)
    if snap is None:
        logger.info("no saved state, starting from an empty book")
        snap = Snapshot(chapters=[Chapter(id=new_id(), title="Chapter 1", content="# Chapter 1\n\n")])
    return snap


def _chapter(snap: Snapshot, ref: str) -> Chapter:
    ch = snap.chapter(ref) or next((c for c in snap.chapters if c.title.lower() == ref.lower()), None)
    if ch is None:
        print(f"[red]No chapter matches[/red] {ref!r}")
        raise typer.Exit(code=1)
    return ch


@app.callback()
def _setup(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging.")) -> None:
    setup_logging("DEBUG" if verbose else None, to_file=False)


@app.command()
def stats(db_path: str = DbOption) -> None:
    """
    Word count, character count and reading time per chapter.
    """
    with Database(db_path) as db:
        snap = _load(db)
        table = Table(title=snap.meta.title)
        table.add_column("Chapter")
        table.add_column("Words", justify="right")
        table.add_column("Characters", justify="right")
        table.add_column("Reading time", justify="right")
        total = 0
        for ch in sorted(snap.chapters, key=lambda c: c.order):
            m = db.metrics_for(ch.id, ch.content)
            total += m["word_count"]
            table.add_row(escape(ch.title), str(m["word_count"]), str(m["char_count"]), m["reading_label"])
        console.print(table)
        print(f"total words={total}")


@app.command()
def mentions(name: str = typer.Argument(..., help="Character name or id."),
             db_path: str = DbOption) -> None:
    """
    Every place a character is mentioned, with a short excerpt.
    """
    with Database(db_path) as db:
        snap = _load(db)
    character = snap.character(name) or next(
        (c for c in snap.characters if c.name.lower() == name.lower()), None)
    if character is None:
        print(f"[red]Unknown character[/red] {name!r}")
        raise typer.Exit(code=1)
    found = find_mentions(sorted(snap.chapters, key=lambda c: c.order), character)
    if not found:
        print(f"{character.name} is not mentioned yet.")
        return
    for m in found:
        hit = _MARK_RE.search(m.excerpt)
        excerpt = (escape(m.excerpt[:hit.start()]) + f"[bold]{escape(hit.group(1))}[/bold]"
                   + escape(m.excerpt[hit.end():])) if hit else escape(m.excerpt)
        print(f"[cyan]{escape(m.chapter_title)}[/cyan] @{m.index}: …{excerpt}…")


@app.command()
def preview(chapter: str = typer.Argument(..., help="Chapter id or title."),
            clean: bool = typer.Option(False, "--clean", help="Strip every annotation."),
            mode: str = typer.Option(PREVIEW, "--mode", help="write | preview"),
            db_path: str = DbOption) -> None:
    """
    Rendered HTML of a chapter.
    """
    if mode not in (WRITE, PREVIEW):
        raise typer.BadParameter("mode must be 'write' or 'preview'")
    with Database(db_path) as db:
        snap = _load(db)
    ch = _chapter(snap, chapter)
    console.print(clean_preview(ch.content) if clean else render_chapter(ch.content, snap, mode=mode),
                  markup=False, highlight=False)


@app.command()
def check(db_path: str = DbOption) -> None:
    """
    Report annotation tags and participant ids whose record no longer exists.
    """
    with Database(db_path) as db:
        snap = _load(db)
    problems = find_dangling_references(snap)
    if not problems:
        print("[green]no dangling references[/green]")
        return
    table = Table(title="Dangling references")
    table.add_column("Chapter")
    table.add_column("Kind")
    table.add_column("Id")
    for p in problems:
        table.add_row(p.chapter_id or "-", p.kind, p.ref_id)
    console.print(table)
    raise typer.Exit(code=1)


@app.command("import-chapter")
def import_chapter(path: str = typer.Argument(..., help=".md, .txt, .html or .docx file"),
                   autotag: bool = typer.Option(True, "--autotag/--no-autotag",
                                                help="Tag known character names."),
                   db_path: str = DbOption) -> None:
    """
    Append a chapter from a file; the title comes from its first heading.
    """
    try:
        title, content = read_chapter_file(path)
    except (OSError, ValueError) as e:
        print(f"[red]Import failed:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    with Database(db_path) as db:
        snap = _load(db)
        if autotag:
            content = auto_tag(content, snap.characters)
        result = store.dispatch(snap, store.Action(
            store.ADD_CHAPTER, Chapter(id=new_id(), title=title, content=content)))
        db.save_snapshot(result.snapshot, SNAPSHOT_KEY)
    print(f"imported [bold]{escape(title)}[/bold] ({len(content)} chars)")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
