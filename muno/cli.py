"""Typer-based CLI for muno."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import typer
from rich.console import Console
from rich.table import Table

from .classifier import repo_name_from_url
from .config import open_workspace
from .exceptions import BulkOperationError, MunoError, ValidationError
from .interactive import build_node_choices, fuzzy_select, is_interactive
from .models import BulkResult, NodeType, RepoState, TreeNode, TreeView
from .navigator import TreeNavigator, normalize_path

app = typer.Typer(help="Navigate a lazily materialized tree of git repositories")
console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    workspace: Path | None = typer.Option(
        None,
        "--workspace",
        help="Directory inside the workspace (defaults to $MUNO_WORKSPACE or the current directory).",
        exists=False,
        dir_okay=True,
        file_okay=False,
    ),
    config: list[str] = typer.Option(
        [],
        "--config",
        "-c",
        help="Override a configuration value, e.g. git.clone_timeout=600. Repeatable.",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show additional debug information."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["workspace"] = workspace
    ctx.obj["config"] = list(config)
    ctx.obj["verbose"] = verbose


@app.command(help="Show the materialized tree below a node")
def tree(
    ctx: typer.Context,
    path: str | None = typer.Argument(None, help="Tree path; defaults to the current node."),
    depth: int | None = typer.Option(None, "--depth", min=0, help="Limit how many levels are shown."),
) -> None:
    with _handle_errors():
        navigator = _build_navigator(ctx)
        view = navigator.tree(_target(navigator, path), depth)
        display = navigator.defaults.display
        for line in render_tree(view, display.get("tree", {}), display.get("icons", {})):
            console.print(line, highlight=False)


@app.command(help="List the children of a node")
def ls(
    ctx: typer.Context,
    path: str | None = typer.Argument(None, help="Tree path; defaults to the current node."),
    as_json: bool = typer.Option(False, "--json", help="Output JSON for scripting."),
) -> None:
    with _handle_errors():
        navigator = _build_navigator(ctx)
        children = navigator.list_children(_target(navigator, path))
    if as_json:
        data = [
            {
                "name": child.name,
                "path": child.path,
                "type": child.type.value,
                "lazy": child.lazy,
                "state": child.state.value,
                "url": child.url,
            }
            for child in children
        ]
        typer.echo(json.dumps(data, indent=2))
        return
    if not children:
        console.print("No children.")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Fetch")
    table.add_column("State")
    table.add_column("URL")
    for child in children:
        table.add_row(
            child.name,
            child.type.value,
            "lazy" if child.lazy else "eager",
            child.state.value,
            child.url or "-",
        )
    console.print(table)


@app.command(help="Move to a node, cloning it if needed")
def use(
    ctx: typer.Context,
    path: str | None = typer.Argument(
        None,
        help="Absolute or relative tree path. If omitted, an interactive picker is shown.",
    ),
) -> None:
    with _handle_errors():
        navigator = _build_navigator(ctx)
        target = path if path is not None else _prompt_child(navigator)
        node = navigator.use_node(target)
    console.print(f"Now at {node.path} ({node.fs_path})")


@app.command(help="Print the current node")
def current(
    ctx: typer.Context,
    clear: bool = typer.Option(False, "--clear", help="Reset the current node to the root."),
) -> None:
    with _handle_errors():
        navigator = _build_navigator(ctx)
        if clear:
            navigator.clear_current()
        node = navigator.resolve(navigator.current_path(), clone=False)
    typer.echo(node.path)
    typer.echo(str(node.fs_path))


@app.command(help="Add a repository under a node")
def add(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Git remote URL."),
    name: str | None = typer.Option(None, "--name", help="Node name; derived from the URL when omitted."),
    parent: str | None = typer.Option(None, "--parent", help="Parent tree path; defaults to the current node."),
    lazy: bool | None = typer.Option(
        None,
        "--lazy/--eager",
        help="Fetch mode. Without either flag the name decides.",
    ),
) -> None:
    with _handle_errors():
        navigator = _build_navigator(ctx)
        node_name = name or repo_name_from_url(url)
        node = navigator.add_repo(_target(navigator, parent), node_name, url, lazy)
    state = "cloned" if node.state != RepoState.MISSING else "lazy, not cloned"
    console.print(f"Added {node.path} ({state})")


@app.command(help="Remove a node and delete its directory")
def rm(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Tree path of the node to remove."),
) -> None:
    with _handle_errors():
        navigator = _build_navigator(ctx)
        removed = navigator.remove_node(path)
    suffix = "" if removed else " (nothing on disk)"
    console.print(f"Removed {path}{suffix}")


@app.command(help="Clone missing repositories below a node")
def clone(
    ctx: typer.Context,
    path: str | None = typer.Argument(None, help="Tree path; defaults to the current node."),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Descend into every level below."),
    include_lazy: bool = typer.Option(False, "--include-lazy", help="Clone lazy repositories too."),
) -> None:
    with _handle_errors():
        navigator = _build_navigator(ctx)
        result = navigator.clone_lazy_repos(
            _target(navigator, path), recursive=recursive, include_lazy=include_lazy
        )
        _report(result)


@app.command(help="Pull cloned repositories below a node")
def pull(
    ctx: typer.Context,
    path: str | None = typer.Argument(None, help="Tree path; defaults to the current node."),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Descend into every level below."),
) -> None:
    with _handle_errors():
        navigator = _build_navigator(ctx)
        result = navigator.pull(_target(navigator, path), recursive=recursive)
        _report(result)


@app.command(help="Commit all changes in cloned repositories below a node")
def commit(
    ctx: typer.Context,
    message: str = typer.Option(..., "--message", "-m", help="Commit message."),
    path: str | None = typer.Argument(None, help="Tree path; defaults to the current node."),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Descend into every level below."),
) -> None:
    with _handle_errors():
        navigator = _build_navigator(ctx)
        result = navigator.commit(_target(navigator, path), message, recursive=recursive)
        _report(result)


@app.command(help="Push cloned repositories below a node")
def push(
    ctx: typer.Context,
    path: str | None = typer.Argument(None, help="Tree path; defaults to the current node."),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Descend into every level below."),
) -> None:
    with _handle_errors():
        navigator = _build_navigator(ctx)
        result = navigator.push(_target(navigator, path), recursive=recursive)
        _report(result)


@app.command(help="Show clone and working tree status")
def status(
    ctx: typer.Context,
    path: str | None = typer.Argument(None, help="Tree path; defaults to the current node."),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Descend into every level below."),
    as_json: bool = typer.Option(False, "--json", help="Output JSON for scripting."),
) -> None:
    with _handle_errors():
        navigator = _build_navigator(ctx)
        statuses = navigator.status(_target(navigator, path), recursive=recursive)
    if as_json:
        data = [
            {
                "path": item.path,
                "type": item.type.value,
                "lazy": item.lazy,
                "state": item.state.value,
                "branch": item.branch,
            }
            for item in statuses
        ]
        typer.echo(json.dumps(data, indent=2))
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Path")
    table.add_column("Type")
    table.add_column("State")
    table.add_column("Branch")
    for item in statuses:
        table.add_row(item.path, item.type.value, _state_label(item.state, item.lazy), item.branch or "-")
    console.print(table)


def render_tree(view: TreeView, glyphs: dict[str, Any], icons: dict[str, Any]) -> list[str]:
    """Render a tree view into text lines using the configured glyphs."""

    lines = [f"{_icon(view.node, icons)} {view.node.name}  {view.node.path}"]
    _render_children(view, "", glyphs, icons, lines)
    return lines


def _render_children(
    view: TreeView, prefix: str, glyphs: dict[str, Any], icons: dict[str, Any], lines: list[str]
) -> None:
    for index, child in enumerate(view.children):
        last = index == len(view.children) - 1
        branch = glyphs.get("last_branch", "└── ") if last else glyphs.get("branch", "├── ")
        lines.append(f"{prefix}{branch}{_icon(child.node, icons)} {child.node.name}")
        extension = glyphs.get("space", "    ") if last else glyphs.get("vertical", "│   ")
        _render_children(child, prefix + extension, glyphs, icons, lines)


def _icon(node: TreeNode, icons: dict[str, Any]) -> str:
    if node.type == NodeType.ROOT:
        return str(icons.get("workspace", ""))
    if node.type == NodeType.CONFIG:
        return str(icons.get("config", ""))
    if node.state == RepoState.MISSING:
        return str(icons.get("lazy", ""))
    return str(icons.get("cloned", ""))


def _state_label(state: RepoState, lazy: bool) -> str:
    if state == RepoState.MISSING and lazy:
        return "missing (lazy)"
    return state.value


def _build_navigator(ctx: typer.Context) -> TreeNavigator:
    return open_workspace(ctx.obj.get("workspace"), ctx.obj.get("config") or [])


def _target(navigator: TreeNavigator, path: str | None) -> str:
    return normalize_path(path or ".", navigator.current_path())


def _prompt_child(navigator: TreeNavigator) -> str:
    interactive = navigator.resolver.get_bool(
        "behavior.interactive", default=navigator.defaults.behavior.interactive
    )
    if not interactive or not is_interactive():
        raise ValidationError("A node path is required when not running interactively.")
    current_path = navigator.current_path()
    children = navigator.list_children(current_path)
    choices = build_node_choices(children, include_parent=current_path != "/")
    if not choices:
        raise ValidationError(f"{current_path} has no children to choose from.")
    return str(fuzzy_select(f"Select node under {current_path}", choices))


def _report(result: BulkResult) -> None:
    if not result.ok:
        raise BulkOperationError(result)
    console.print(result.summary())


@contextmanager
def _handle_errors() -> Iterator[None]:
    try:
        yield
    except MunoError as err:
        _fail(str(err))


def _fail(message: str, code: int = 1) -> None:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code)


if __name__ == "__main__":
    app()
