"""pagestore pages: lifecycle and read commands for pages."""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

import typer

from pagestore.cli import _exitcodes as ec
from pagestore.cli._output import (
    print_envelope,
    print_error,
    print_object,
    print_page_error,
    print_table,
)
from pagestore.cli._storage import open_manager
from pagestore.errors import (
    LifecycleError,
    MalformedRequestError,
    NotFoundError,
    PageStoreError,
    StorageOperationError,
)
from pagestore.pages import PageManager
from pagestore.query import ListResponse
from pagestore.types import Page

app = typer.Typer(no_args_is_help=True)

PAGE_HEADERS = ["id", "status", "title", "path", "saved_on"]
PAGE_DETAIL_FIELDS = (
    "id",
    "pid",
    "version",
    "status",
    "locked",
    "title",
    "path",
    "category",
    "tags",
    "saved_on",
    "published_on",
)


def _exit_code(exc: PageStoreError) -> int:
    if isinstance(exc, NotFoundError):
        return ec.NOT_FOUND
    if isinstance(exc, MalformedRequestError):
        return ec.USAGE_ERROR
    if isinstance(exc, StorageOperationError):
        return ec.DATABASE_ERROR
    if isinstance(exc, LifecycleError):
        return ec.EXECUTION_FAILURE
    return ec.GENERAL_ERROR


def _run(action: Callable[[PageManager], Any]) -> Any:
    """Open the manager, run ``action`` and map pagestore errors to exit codes."""
    from pagestore.cli import state

    try:
        table, manager = open_manager()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        return action(manager)
    except PageStoreError as e:
        print_page_error(e, json_mode=state.json_output)
        raise typer.Exit(_exit_code(e))
    finally:
        table.close()


def _page_row(page: Page) -> list[Any]:
    return [page.id, page.status, page.title, page.path, page.saved_on]


def _show_page(page: Page) -> None:
    from pagestore.cli import state

    if state.json_output:
        print_envelope(page)
        return
    record = page.to_record()
    print_object({k: record.get(k) for k in PAGE_DETAIL_FIELDS})


def _show_pages(pages: list[Page]) -> None:
    from pagestore.cli import state

    if state.json_output:
        print_envelope(pages)
        return
    print_table(PAGE_HEADERS, [_page_row(p) for p in pages])


def _parse_json_option(name: str, raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        print_error(f"{name} must be valid JSON: {e}")
        raise typer.Exit(ec.USAGE_ERROR)


def _parse_where(entries: list[str] | None) -> dict[str, Any]:
    """Parse ``KEY=VALUE`` entries; values are JSON when they parse, else plain strings."""
    where: dict[str, Any] = {}
    for entry in entries or []:
        key, sep, raw = entry.partition("=")
        if not sep or not key:
            print_error(f"Invalid --where '{entry}': expected KEY=VALUE")
            raise typer.Exit(ec.USAGE_ERROR)
        try:
            where[key] = json.loads(raw)
        except json.JSONDecodeError:
            where[key] = raw
    return where


@app.command(name="create")
def create_cmd(
    title: str = typer.Option("Untitled", "--title", help="Page title"),
    path: Optional[str] = typer.Option(None, "--path", help="URL path of the page"),
    category: Optional[str] = typer.Option(None, "--category", help="Page category"),
    tags: Optional[list[str]] = typer.Option(None, "--tag", help="Tag (repeatable)"),
) -> None:
    """Create a new page (version 1, draft)."""
    page = _run(lambda m: m.create(title=title, path=path, category=category, tags=tags))
    _show_page(page)


@app.command(name="create-from")
def create_from_cmd(
    page_id: str = typer.Argument(..., help="Revision id (pid#NNNN) or pid to copy"),
) -> None:
    """Create a new draft revision copied from an existing one."""
    _show_page(_run(lambda m: m.create_from(page_id)))


@app.command(name="get")
def get_cmd(
    page_id: Optional[str] = typer.Argument(None, help="Revision id (pid#NNNN) or pid"),
    path: Optional[str] = typer.Option(None, "--path", help="Resolve a published page by path"),
    published: bool = typer.Option(False, "--published", help="Load the published revision"),
) -> None:
    """Load a single page by id, pid or path."""
    if page_id is None and path is None:
        print_error("Either PAGE_ID or --path is required")
        raise typer.Exit(ec.USAGE_ERROR)

    def _get(m: PageManager) -> Page:
        if path is not None:
            return m.get_by_path(path)
        assert page_id is not None
        if published:
            return m.get_published(page_id)
        return m.get(page_id)

    _show_page(_run(_get))


@app.command(name="list")
def list_cmd(
    published: bool = typer.Option(False, "--published", help="List published pages"),
    search: Optional[str] = typer.Option(None, "--search", help="Search title and snippet"),
    tags: Optional[list[str]] = typer.Option(None, "--tag", help="Tag (repeatable)"),
    tags_rule: str = typer.Option("all", "--tags-rule", help="Match 'any' or 'all' tags"),
    where: Optional[list[str]] = typer.Option(
        None, "--where", help="KEY=VALUE predicate, e.g. status=draft (repeatable)"
    ),
    sort: Optional[list[str]] = typer.Option(
        None, "--sort", help="FIELD_ASC or FIELD_DESC (repeatable)"
    ),
    limit: Optional[int] = typer.Option(None, "--limit", help="Max results"),
    after: Optional[str] = typer.Option(None, "--after", help="Cursor from a previous page"),
) -> None:
    """List latest (default) or published pages."""
    from pagestore.cli import state

    fields = _parse_where(where)
    response: ListResponse = _run(
        lambda m: m.list(
            published=published,
            search=search,
            tags=tags or (),
            tags_rule=tags_rule,
            where=fields,
            sort=sort or (),
            limit=limit,
            after=after,
        )
    )
    if state.json_output:
        print_envelope(response)
        return
    print_table(PAGE_HEADERS, [_page_row(p) for p in response.items])
    meta = response.meta
    print(f"\n{len(response.items)} of {meta.total_count} pages")
    if meta.has_more_items:
        print(f"Next: --after {meta.cursor}")


@app.command(name="revisions")
def revisions_cmd(
    pid: str = typer.Argument(..., help="Page id"),
) -> None:
    """List every revision of a page, oldest first."""
    _show_pages(_run(lambda m: m.list_revisions(pid)))


@app.command(name="tags")
def tags_cmd(
    search: Optional[str] = typer.Option(None, "--search", help="Case-insensitive regex"),
) -> None:
    """List distinct tags across the latest pages."""
    from pagestore.cli import state

    tags = _run(lambda m: m.list_tags(search))
    if state.json_output:
        print_envelope(tags)
        return
    for tag in tags:
        print(tag)


@app.command(name="update")
def update_cmd(
    page_id: str = typer.Argument(..., help="Revision id (pid#NNNN)"),
    title: Optional[str] = typer.Option(None, "--title", help="New title"),
    path: Optional[str] = typer.Option(None, "--path", help="New path"),
    tags: Optional[list[str]] = typer.Option(None, "--tag", help="Replace tags (repeatable)"),
    snippet: Optional[str] = typer.Option(None, "--snippet", help="New snippet"),
    category: Optional[str] = typer.Option(None, "--category", help="New category"),
    content: Optional[str] = typer.Option(None, "--content", help="Content as JSON"),
    settings: Optional[str] = typer.Option(None, "--settings", help="Settings as JSON object"),
) -> None:
    """Update a revision's editable fields."""
    changes: dict[str, Any] = {
        "title": title,
        "path": path,
        "tags": tags,
        "snippet": snippet,
        "category": category,
        "content": _parse_json_option("--content", content),
        "settings": _parse_json_option("--settings", settings),
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        print_error("Nothing to update")
        raise typer.Exit(ec.USAGE_ERROR)
    _show_page(_run(lambda m: m.update(page_id, **changes)))


@app.command(name="publish")
def publish_cmd(page_id: str = typer.Argument(..., help="Revision id (pid#NNNN)")) -> None:
    """Publish a revision, unpublishing the previously published one."""
    _show_page(_run(lambda m: m.publish(page_id)))


@app.command(name="unpublish")
def unpublish_cmd(page_id: str = typer.Argument(..., help="Revision id (pid#NNNN)")) -> None:
    """Unpublish the published revision and free its path."""
    _show_page(_run(lambda m: m.unpublish(page_id)))


@app.command(name="request-review")
def request_review_cmd(page_id: str = typer.Argument(..., help="Revision id (pid#NNNN)")) -> None:
    """Ask for review of a draft revision."""
    _show_page(_run(lambda m: m.request_review(page_id)))


@app.command(name="request-changes")
def request_changes_cmd(page_id: str = typer.Argument(..., help="Revision id (pid#NNNN)")) -> None:
    """Send a revision under review back for changes."""
    _show_page(_run(lambda m: m.request_changes(page_id)))


@app.command(name="delete")
def delete_cmd(
    page_id: str = typer.Argument(..., help="Revision id (pid#NNNN), or pid for the whole page"),
) -> None:
    """Delete one revision, or every record of the page for a bare pid."""
    from pagestore.cli import state

    page, latest = _run(lambda m: m.delete(page_id))
    data = {"deleted": page.id, "latest": latest.id if latest else None}
    if state.json_output:
        print_envelope(data)
        return
    print(f"Deleted: {data['deleted']}")
    print(f"Latest: {data['latest'] or '(none)'}")
