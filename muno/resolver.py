"""Layered configuration values: defaults < workspace < node < CLI."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Iterable

from .exceptions import ValidationError
from .tree_config import NodeDefinition

NODE_SPECIFIC_KEYS = frozenset(
    {
        "git.default_branch",
        "git.default_remote",
        "git.shallow_depth",
        "fetch",
    }
)

_NUMERIC_HINTS = ("timeout", "depth", "parallel", "size")


def deep_merge(dst: dict[str, Any], src: dict[str, Any]) -> dict[str, Any]:
    """Merge ``src`` into ``dst`` in place; nested maps merge, anything else replaces."""

    for key, value in src.items():
        current = dst.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            deep_merge(current, value)
        elif isinstance(value, dict):
            dst[key] = copy.deepcopy(value)
        else:
            dst[key] = value
    return dst


def get_by_path(data: dict[str, Any], path: str, default: Any = None) -> Any:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def set_by_path(data: dict[str, Any], path: str, value: Any) -> dict[str, Any]:
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value
    return data


def is_node_specific(key: str) -> bool:
    return key in NODE_SPECIFIC_KEYS


def coerce_value(key: str, value: str) -> Any:
    if value == "true":
        return True
    if value == "false":
        return False
    if any(hint in key for hint in _NUMERIC_HINTS):
        try:
            return int(value)
        except ValueError:
            return value
    return value


def parse_config_overrides(overrides: Iterable[str]) -> dict[str, Any]:
    """Turn ``key.path=value`` strings into a nested map."""

    result: dict[str, Any] = {}
    for entry in overrides:
        key, sep, value = entry.partition("=")
        if not sep:
            raise ValidationError(f"invalid config override format: {entry} (expected key=value)")
        key = key.strip()
        if not key:
            raise ValidationError(f"invalid config override format: {entry} (empty key)")
        set_by_path(result, key, coerce_value(key, value.strip()))
    return result


@dataclass
class ConfigResolver:
    defaults: dict[str, Any] = field(default_factory=dict)
    workspace: dict[str, Any] = field(default_factory=dict)
    cli: dict[str, Any] = field(default_factory=dict)

    def resolve(self, node: NodeDefinition | None = None, level: dict[str, Any] | None = None) -> dict[str, Any]:
        """Return a fresh merged map; shared layers are never mutated.

        ``level`` carries the ``overrides`` of a delegated config file and sits
        between the workspace and the node.
        """

        result: dict[str, Any] = {}
        deep_merge(result, self.defaults)
        deep_merge(result, self.workspace)
        if level:
            deep_merge(result, level)
        if node is not None and node.overrides:
            deep_merge(result, node.overrides)
        deep_merge(result, self.cli)
        return result

    def get_value(
        self,
        path: str,
        node: NodeDefinition | None = None,
        default: Any = None,
        *,
        level: dict[str, Any] | None = None,
    ) -> Any:
        return get_by_path(self.resolve(node, level), path, default)

    def get_default_branch(
        self, node: NodeDefinition | None = None, *, level: dict[str, Any] | None = None
    ) -> str:
        if node is not None and node.default_branch:
            return node.default_branch
        branch = self.get_value("git.default_branch", node, level=level)
        if isinstance(branch, str) and branch:
            return branch
        return "main"

    def cli_fetch(self) -> str | None:
        value = self.cli.get("fetch")
        return value if isinstance(value, str) and value else None

    def get_int(
        self,
        path: str,
        node: NodeDefinition | None = None,
        default: int = 0,
        *,
        level: dict[str, Any] | None = None,
    ) -> int:
        value = self.get_value(path, node, default, level=level)
        if isinstance(value, bool):
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def get_bool(self, path: str, node: NodeDefinition | None = None, default: bool = False) -> bool:
        value = self.get_value(path, node, default)
        return value if isinstance(value, bool) else default

    def split_cli_overrides(self) -> tuple[dict[str, Any], dict[str, Any]]:
        """Partition CLI overrides into (workspace scope, node scope) maps."""

        workspace_scope: dict[str, Any] = {}
        node_scope: dict[str, Any] = {}
        for key, value in _flatten(self.cli):
            target = node_scope if is_node_specific(key) else workspace_scope
            set_by_path(target, key, value)
        return workspace_scope, node_scope


def _flatten(data: dict[str, Any], prefix: str = "") -> Iterable[tuple[str, Any]]:
    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and value:
            yield from _flatten(value, path)
        else:
            yield path, value
