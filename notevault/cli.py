from __future__ import annotations
import json
import sys
from pathlib import Path
from typing import Optional
import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from .client import ApiError, Autosaver, LocalState, NotePager, NotesClient, autosaved_since_save
from .config import get_settings
from .crypto import ContentCipher
from .logging_setup import setup_logging
from .models import UNTITLED

app = typer.Typer(help="notevault — personal notes from the terminal")
user_app = typer.Typer(help="Manage local user accounts (development)")
category_app = typer.Typer(help="Manage categories")
label_app = typer.Typer(help="Manage labels")
app.add_typer(user_app, name="user")
app.add_typer(category_app, name="categories")
app.add_typer(label_app, name="labels")

console = Console()


@app.callback()
def _boot(verbose: bool = typer.Option(False, "--verbose", "-v")):
    settings = get_settings()
    setup_logging("DEBUG" if verbose else "WARNING", settings.log_file)


def _state() -> LocalState:
    return LocalState(get_settings().home)


def _client() -> NotesClient:
    state = _state()
    return NotesClient(
        state.api_url or get_settings().api_url,
        token=state.token,
        cipher=ContentCipher(state.key_provider()),
    )


def _split_ids(raw: Optional[str]) -> Optional[list[int]]:
    if raw is None:
        return None
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise typer.BadParameter("expected comma separated ids") from None


def _fail(e: Exception) -> None:
    if isinstance(e, ApiError):
        console.print(f"[red]Error {e.status_code}[/]: {e.message}")
        for field, message in e.details.items():
            console.print(f"  [dim]{field}[/]: {message}")
    else:
        # local failures, e.g. an unusable encryption key
        console.print(f"[red]Error[/]: {e}")
    raise typer.Exit(1)


def _flags(n: dict) -> str:
    flags = []
    if n["is_draft"]:
        flags.append("draft")
    if n["is_public"]:
        flags.append("public")
    if n["is_encrypted"]:
        flags.append("encrypted")
    return ", ".join(flags)


def _print_notes(notes: list[dict], title: str) -> None:
    table = Table(title=title)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Category", style="magenta")
    table.add_column("Labels", style="magenta")
    table.add_column("Flags")
    table.add_column("Updated")
    for n in notes:
        table.add_row(
            str(n["id"]), n["title"] or UNTITLED,
            (n.get("category") or {}).get("name", ""),
            ", ".join(label["name"] for label in n["labels"]),
            _flags(n),
            n["updated_at"][:16],
        )
    console.print(table)


# ---------- server & accounts ----------
@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    reload: bool = typer.Option(False, "--reload"),
):
    """Run the HTTP API."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("notevault.app:app", host=host or settings.host, port=port or settings.port, reload=reload)


@user_app.command("add")
def user_add(name: str, email: str):
    from .auth import create_user, issue_token
    from .db import init_db

    init_db()
    user = create_user(name, email)
    console.print(f"[green]Created user[/] #{user.id}: {user.name} <{user.email}>")
    console.print(issue_token(user))


@user_app.command("token")
def user_token(user_id: int):
    from .auth import get_user, issue_token
    from .db import init_db

    init_db()
    console.print(issue_token(get_user(user_id)))


@app.command()
def login(token: str, url: Optional[str] = typer.Option(None, "--url")):
    _state().login(token, url)
    console.print("[green]Token saved[/]")


@app.command()
def logout():
    _state().logout()
    console.print("[yellow]Logged out[/]; local encryption key removed")


# ---------- notes ----------
@app.command("list")
def _list(
    search: Optional[str] = typer.Option(None, "--search"),
    category: Optional[int] = typer.Option(None, "--category"),
    labels: Optional[str] = typer.Option(None, "--labels", help="comma separated label ids"),
    date: str = typer.Option("all", "--date", help="all|today|week|month|year"),
    visibility: str = typer.Option("all", "--visibility", help="all|private|public|draft|published"),
    encryption: str = typer.Option("all", "--encryption", help="all|encrypted|unencrypted"),
    drafts: bool = typer.Option(False, "--drafts"),
    sort: Optional[str] = typer.Option(None, "--sort", help="updated|created|title + _asc|_desc; remembered"),
    page: int = typer.Option(1, "--page"),
    limit: int = typer.Option(20, "--limit"),
):
    state = _state()
    if sort:
        state.remember_sort(sort)
    sort = sort or state.sort_preference or "updated_desc"
    try:
        data = _client().list_notes(
            search=search, category=category, labels=_split_ids(labels), date=date,
            visibility=visibility, encryption=encryption, drafts=drafts,
            sort=sort, page=page, limit=limit,
        )
    except ApiError as e:
        _fail(e)
    p = data["pagination"]
    _print_notes(data["notes"], f"Notes — page {p['page']}/{max(p['totalPages'], 1)} ({p['total']} total)")


@app.command()
def search(
    query: str,
    drafts: bool = typer.Option(False, "--drafts"),
    limit: int = typer.Option(20, "--limit"),
):
    try:
        data = _client().search_notes(query, drafts=drafts, limit=limit, sort=_state().sort_preference)
    except ApiError as e:
        _fail(e)
    _print_notes(data["notes"], f"Search '{query}' — {data['total']} match(es)")


@app.command()
def show(identifier: str):
    """Show a note by id or public link id."""
    try:
        n = _client().get_note(identifier)
    except ApiError as e:
        _fail(e)
    console.rule(f"#{n['id']} {n['title'] or UNTITLED}")
    meta = [_flags(n)]
    if n.get("category"):
        meta.append(f"category: {n['category']['name']}")
    if n["labels"]:
        meta.append("labels: " + ", ".join(label["name"] for label in n["labels"]))
    if n.get("public_link_id"):
        meta.append(f"link: {n['public_link_id']}")
    console.print(f"[dim]{' | '.join(m for m in meta if m)}[/]")
    if autosaved_since_save(n):
        console.print("[yellow]Autosaved changes since the last save[/]")
    console.print(Markdown(n["content"] or "_<empty>_"))


@app.command()
def add(
    title: str = typer.Option(..., "--title", "-t"),
    content: str = typer.Option("", "--content", "-c"),
    encrypt: bool = typer.Option(False, "--encrypt"),
    public: bool = typer.Option(False, "--public"),
    draft: bool = typer.Option(True, "--draft/--publish"),
    category: Optional[int] = typer.Option(None, "--category"),
    labels: Optional[str] = typer.Option(None, "--labels", help="comma separated label ids"),
):
    try:
        n = _client().create_note(
            title, content, encrypt=encrypt, is_public=public, is_draft=draft,
            category_id=category, label_ids=_split_ids(labels),
        )
    except (ApiError, ValueError) as e:
        _fail(e)
    console.print(f"[green]Created[/] #{n['id']}: {n['title']}")
    if n.get("public_link_id"):
        console.print(f"[dim]public link:[/] {n['public_link_id']}")


@app.command()
def edit(
    note_id: int,
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    content: Optional[str] = typer.Option(None, "--content", "-c"),
    encrypt: Optional[bool] = typer.Option(None, "--encrypt/--no-encrypt"),
    public: Optional[bool] = typer.Option(None, "--public/--private"),
    draft: Optional[bool] = typer.Option(None, "--draft/--publish"),
    category: Optional[int] = typer.Option(None, "--category"),
    labels: Optional[str] = typer.Option(None, "--labels", help="comma separated label ids; replaces"),
):
    client = _client()
    fields: dict = {}
    if title is not None:
        fields["title"] = title
    if public is not None:
        fields["is_public"] = public
    if draft is not None:
        fields["is_draft"] = draft
    if category is not None:
        fields["category_id"] = category
    if labels is not None:
        fields["label_ids"] = _split_ids(labels)
    try:
        current = client.get_note(note_id)
        if encrypt is None:
            encrypt = current["is_encrypted"]
        if content is None and encrypt != current["is_encrypted"]:
            content = current["content"]
        n = client.update_note(note_id, content=content, encrypt=encrypt, **fields)
    except (ApiError, ValueError) as e:
        _fail(e)
    console.print(f"[green]Updated[/] #{n['id']}: {n['title']}")
    if n.get("public_link_id"):
        console.print(f"[dim]public link:[/] {n['public_link_id']}")


@app.command()
def write(
    title: str = typer.Option(UNTITLED, "--title", "-t"),
    note_id: Optional[int] = typer.Option(None, "--id"),
    encrypt: bool = typer.Option(False, "--encrypt"),
):
    """Compose from stdin; the draft is autosaved while you type."""
    client = _client()
    saver = Autosaver(client, delay=get_settings().autosave_delay, note_id=note_id, encrypt=encrypt)
    lines: list[str] = []
    console.print("[dim]Type your note; finish with Ctrl-D.[/]")
    for line in sys.stdin:
        lines.append(line.rstrip("\n"))
        saver.edit(title, "\n".join(lines))
    saver.flush()
    if saver.note_id is None:
        console.print(f"[red]Nothing saved[/]{f': {saver.last_error}' if saver.last_error else ''}")
        raise typer.Exit(1)
    console.print(f"[green]Draft saved[/] #{saver.note_id}")


@app.command("rm")
def remove(note_id: int):
    try:
        _client().delete_note(note_id)
    except ApiError as e:
        _fail(e)
    console.print(f"[red]Deleted[/] #{note_id}")


@app.command()
def export(to: Path = typer.Option(..., "--to"), drafts: bool = typer.Option(True, "--drafts/--no-drafts")):
    pager = NotePager(_client(), limit=50, drafts=drafts)
    try:
        notes = list(pager)
    except ApiError as e:
        _fail(e)
    payload = [
        {
            "id": n["id"],
            "title": n["title"],
            "content": n["content"],
            "is_public": n["is_public"],
            "is_draft": n["is_draft"],
            "category": (n.get("category") or {}).get("name"),
            "labels": [label["name"] for label in n["labels"]],
            "created_at": n["created_at"],
            "updated_at": n["updated_at"],
        }
        for n in notes
    ]
    to.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    console.print(f"[green]Exported[/] {len(payload)} notes → {to}")


# ---------- categories ----------
@category_app.command("list")
def categories_list():
    try:
        categories = _client().list_categories()
    except ApiError as e:
        _fail(e)
    table = Table(title="Categories")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Icon")
    table.add_column("Color")
    table.add_column("Default")
    for c in categories:
        table.add_row(str(c["id"]), c["name"], c["icon"], c["color"], "✓" if c["is_default"] else "")
    console.print(table)


@category_app.command("add")
def categories_add(
    name: str,
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    color: Optional[str] = typer.Option(None, "--color"),
    icon: Optional[str] = typer.Option(None, "--icon"),
):
    try:
        c = _client().create_category(name, description, color, icon)
    except ApiError as e:
        _fail(e)
    console.print(f"[green]Created category[/] #{c['id']}: {c['name']}")


@category_app.command("edit")
def categories_edit(
    category_id: int,
    name: Optional[str] = typer.Option(None, "--name"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    color: Optional[str] = typer.Option(None, "--color"),
    icon: Optional[str] = typer.Option(None, "--icon"),
):
    changes = {k: v for k, v in dict(name=name, description=description, color=color, icon=icon).items() if v is not None}
    try:
        c = _client().update_category(category_id, **changes)
    except ApiError as e:
        _fail(e)
    console.print(f"[green]Updated category[/] #{c['id']}: {c['name']}")


@category_app.command("rm")
def categories_rm(category_id: int):
    try:
        _client().delete_category(category_id)
    except ApiError as e:
        _fail(e)
    console.print(f"[red]Deleted category[/] #{category_id}")


# ---------- labels ----------
@label_app.command("list")
def labels_list():
    try:
        labels = _client().list_labels()
    except ApiError as e:
        _fail(e)
    table = Table(title="Labels")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Color")
    for label in labels:
        table.add_row(str(label["id"]), label["name"], label["color"])
    console.print(table)


@label_app.command("add")
def labels_add(name: str, color: Optional[str] = typer.Option(None, "--color")):
    try:
        label = _client().create_label(name, color)
    except ApiError as e:
        _fail(e)
    console.print(f"[green]Created label[/] #{label['id']}: {label['name']}")


@label_app.command("edit")
def labels_edit(
    label_id: int,
    name: Optional[str] = typer.Option(None, "--name"),
    color: Optional[str] = typer.Option(None, "--color"),
):
    changes = {k: v for k, v in dict(name=name, color=color).items() if v is not None}
    try:
        label = _client().update_label(label_id, **changes)
    except ApiError as e:
        _fail(e)
    console.print(f"[green]Updated label[/] #{label['id']}: {label['name']}")


@label_app.command("rm")
def labels_rm(label_id: int):
    try:
        _client().delete_label(label_id)
    except ApiError as e:
        _fail(e)
    console.print(f"[red]Deleted label[/] #{label_id}")


def main():
    app()


if __name__ == "__main__":
    main()
