"""Declarative tree configuration: one file describes one level of the tree."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterable

import yaml

from .defaults import Defaults
from .exceptions import ConfigParseError, ConfigReadError, ConfigValidationError

FETCH_AUTO = "auto"
FETCH_LAZY = "lazy"
FETCH_EAGER = "eager"

_PATTERN_KEYS = ("eager_pattern",)


@dataclass
class Workspace:
    name: str = ""
    root_repo: str = ""
    repos_dir: str = ""


@dataclass
class NodeDefinition:
    """One entry of a level's flat ``nodes`` list."""

    name: str
    url: str = ""
    config: str = ""
    fetch: str = FETCH_AUTO
    default_branch: str = ""
    overrides: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_config_ref(self) -> bool:
        return bool(self.config) and not self.url

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeDefinition:
        fetch = data.get("fetch")
        if fetch is None and isinstance(data.get("lazy"), bool):
            fetch = FETCH_LAZY if data["lazy"] else FETCH_EAGER
        return cls(
            name=_text(data.get("name")),
            url=_text(data.get("url")),
            config=_text(data.get("config")),
            fetch=_text(fetch) or FETCH_AUTO,
            default_branch=_text(data.get("default_branch")),
            overrides=data.get("overrides") or {},
            metadata=data.get("metadata") or {},
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.url:
            data["url"] = self.url
        if self.config:
            data["config"] = self.config
        if self.fetch and self.fetch != FETCH_AUTO:
            data["fetch"] = self.fetch
        if self.default_branch:
            data["default_branch"] = self.default_branch
        if self.overrides:
            data["overrides"] = self.overrides
        if self.metadata:
            data["metadata"] = self.metadata
        return data


@dataclass
class ConfigTree:
    """A single configuration file: workspace settings plus direct children."""

    workspace: Workspace = field(default_factory=Workspace)
    nodes: list[NodeDefinition] = field(default_factory=list)
    defaults: dict[str, Any] = field(default_factory=dict)
    overrides: dict[str, Any] = field(default_factory=dict)
    # Runtime only: directory holding the file, the file itself and the
    # workspace block exactly as written, before defaults were applied.
    path: Path | None = None
    file: Path | None = None
    declared: Workspace | None = None

    @classmethod
    def default(cls, name: str, defaults: Defaults) -> ConfigTree:
        return cls(workspace=Workspace(name=name, repos_dir=defaults.workspace.repos_dir))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfigTree:
        workspace = data.get("workspace") or {}
        if not isinstance(workspace, dict):
            raise ConfigValidationError("workspace must be a mapping")
        raw_nodes = data.get("nodes") or []
        if not isinstance(raw_nodes, list):
            raise ConfigValidationError("nodes must be a list")
        nodes = []
        for index, item in enumerate(raw_nodes):
            if not isinstance(item, dict):
                raise ConfigValidationError(f"node #{index + 1} must be a mapping")
            nodes.append(NodeDefinition.from_dict(item))
        return cls(
            workspace=Workspace(
                name=_text(workspace.get("name")),
                root_repo=_text(workspace.get("root_repo")),
                repos_dir=_text(workspace.get("repos_dir")),
            ),
            nodes=nodes,
            defaults=data.get("defaults") or {},
            overrides=data.get("overrides") or {},
        )

    def to_dict(self) -> dict[str, Any]:
        source = self.declared or self.workspace
        workspace: dict[str, Any] = {}
        if source.name:
            workspace["name"] = source.name
        if source.root_repo:
            workspace["root_repo"] = source.root_repo
        if source.repos_dir:
            workspace["repos_dir"] = source.repos_dir
        data: dict[str, Any] = {
            "workspace": workspace,
            "nodes": [node.to_dict() for node in self.nodes],
        }
        if self.defaults:
            data["defaults"] = self.defaults
        if self.overrides:
            data["overrides"] = self.overrides
        return data

    def apply_defaults(self, defaults: Defaults) -> None:
        """Fill empty workspace fields from the embedded defaults; set values win."""

        if self.declared is None:
            self.declared = replace(self.workspace)
        if not self.workspace.name:
            self.workspace.name = defaults.workspace.name
        if not self.workspace.repos_dir:
            self.workspace.repos_dir = defaults.workspace.repos_dir
        if not self.workspace.root_repo:
            self.workspace.root_repo = defaults.workspace.root_repo

    def validate(self) -> None:
        if not self.workspace.name:
            raise ConfigValidationError("workspace name is required", self.file)
        for index, node in enumerate(self.nodes):
            if not node.name:
                raise ConfigValidationError(f"node #{index + 1}: node name is required", self.file)
            has_url = bool(node.url)
            has_config = bool(node.config)
            if has_url and has_config:
                raise ConfigValidationError(
                    f"node {node.name} cannot have both url and config fields", self.file
                )
            if not has_url and not has_config:
                raise ConfigValidationError(
                    f"node {node.name} must have either url or config field", self.file
                )
            if not isinstance(node.overrides, dict):
                raise ConfigValidationError(f"node {node.name}: overrides must be a mapping", self.file)
        if not isinstance(self.overrides, dict):
            raise ConfigValidationError("overrides must be a mapping", self.file)
        if not isinstance(self.defaults, dict):
            raise ConfigValidationError("defaults must be a mapping", self.file)
        for key in _PATTERN_KEYS:
            pattern = self.defaults.get(key)
            if not pattern:
                continue
            try:
                re.compile(str(pattern))
            except re.error as exc:
                raise ConfigValidationError(f"invalid {key} regex {pattern!r}: {exc}", self.file) from exc

    def find_node(self, name: str) -> NodeDefinition | None:
        # Duplicate sibling names are tolerated; the first definition wins.
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def remove_node(self, name: str) -> bool:
        before = len(self.nodes)
        self.nodes = [node for node in self.nodes if node.name != name]
        return len(self.nodes) != before

    @property
    def repos_dir(self) -> str:
        return self.workspace.repos_dir or "."

    def save(self, path: Path | None = None) -> Path:
        target = Path(path) if path is not None else self.file
        if target is None:
            raise ConfigReadError("no file associated with this configuration")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigReadError(f"creating config directory {target.parent}: {exc}", target) from exc
        text = yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)
        try:
            target.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise ConfigReadError(f"writing config file {target}: {exc}", target) from exc
        self.file = target
        self.path = target.parent
        return target


def load_tree(path: Path | str, defaults: Defaults) -> ConfigTree:
    """Read, parse, default and validate one configuration file."""

    source = Path(path)
    try:
        raw = source.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigReadError(f"reading config file {source}: {exc}", source) from exc
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigParseError(f"parsing config {source}: {exc}", source) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigParseError(f"parsing config {source}: top level must be a mapping", source)
    try:
        tree = ConfigTree.from_dict(data)
    except ConfigValidationError as exc:
        raise ConfigValidationError(f"invalid configuration {source}: {exc}", source) from exc
    tree.apply_defaults(defaults)
    tree.path = source.parent
    tree.file = source
    try:
        tree.validate()
    except ConfigValidationError as exc:
        raise ConfigValidationError(f"invalid configuration {source}: {exc}", source) from exc
    return tree


def auto_discover_config(directory: Path | str, names: Iterable[str]) -> tuple[Path | None, bool]:
    """Return the first config file found in ``directory`` following ``names`` order."""

    base = Path(directory)
    for name in names:
        candidate = base / name
        if candidate.is_file():
            return candidate, True
    return None, False


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
