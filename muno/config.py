"""Locate the workspace and assemble a navigator for it."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

from .defaults import Defaults, load_defaults
from .exceptions import ValidationError
from .git import GitClient, SubprocessGit
from .navigator import TreeNavigator
from .resolver import ConfigResolver, parse_config_overrides
from .tree_config import auto_discover_config, load_tree

WORKSPACE_ENV = "MUNO_WORKSPACE"


def find_workspace_root(start: Path | None = None, defaults: Defaults | None = None) -> tuple[Path, Path]:
    """Return ``(root_dir, config_file)`` for the nearest workspace.

    The search walks upwards from ``start``. Without ``start``, ``$MUNO_WORKSPACE``
    names the root directly, and failing that the current directory is used.
    """

    defaults = defaults or load_defaults()
    override = _optional_env(WORKSPACE_ENV) if start is None else None
    if override is not None:
        config_file, found = auto_discover_config(override, defaults.files.config_names)
        if not found or config_file is None:
            raise ValidationError(f"{WORKSPACE_ENV}={override} does not contain a muno configuration file")
        return override, config_file
    origin = (start or Path.cwd()).expanduser().resolve()
    for candidate in (origin, *origin.parents):
        config_file, found = auto_discover_config(candidate, defaults.files.config_names)
        if found and config_file is not None:
            return candidate, config_file
    raise ValidationError(f"No muno workspace found in {origin} or any parent directory")


def open_workspace(
    start: Path | None = None,
    cli_overrides: Iterable[str] = (),
    git: GitClient | None = None,
) -> TreeNavigator:
    defaults = load_defaults()
    _, config_file = find_workspace_root(start, defaults)
    root = load_tree(config_file, defaults)
    resolver = ConfigResolver(
        defaults=defaults.as_dict(),
        workspace=root.overrides,
        cli=parse_config_overrides(cli_overrides),
    )
    return TreeNavigator(config_file, defaults, resolver, git or SubprocessGit())


def _optional_env(var: str) -> Path | None:
    raw = os.environ.get(var)
    if not raw:
        return None
    return Path(raw).expanduser().resolve()
