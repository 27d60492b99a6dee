"""Dataclasses shared across modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class NodeType(str, Enum):
    ROOT = "root"
    REPO = "repo"
    CONFIG = "config"


class RepoState(str, Enum):
    MISSING = "missing"
    CLONED = "cloned"
    MODIFIED = "modified"


@dataclass
class TreeNode:
    """Runtime view of one node, rebuilt from config and disk on every access."""

    name: str
    path: str
    type: NodeType
    fs_path: Path
    url: str = ""
    lazy: bool = False
    state: RepoState = RepoState.MISSING
    children: list[str] = field(default_factory=list)
    children_loaded: bool = False

    @property
    def needs_clone(self) -> bool:
        return self.type == NodeType.REPO and self.lazy and self.state == RepoState.MISSING


@dataclass(frozen=True)
class ChildInfo:
    """A declared child as reported by ``TreeNavigator.list_children``."""

    name: str
    path: str
    type: NodeType
    lazy: bool
    state: RepoState
    url: str = ""


@dataclass(frozen=True)
class NodeStatus:
    path: str
    name: str
    type: NodeType
    lazy: bool
    state: RepoState
    branch: str | None = None


@dataclass(frozen=True)
class RepoFailure:
    path: str
    error: str


@dataclass
class BulkResult:
    """Outcome of a clone or pull batch; individual failures never abort siblings."""

    operation: str
    succeeded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[RepoFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def add_failure(self, path: str, error: BaseException | str) -> None:
        self.failed.append(RepoFailure(path=path, error=str(error)))

    def summary(self) -> str:
        lines = [
            f"{self.operation}: {len(self.succeeded)} succeeded, {len(self.failed)} failed, "
            f"{len(self.skipped)} skipped"
        ]
        for failure in self.failed:
            lines.append(f"  {failure.path}: {failure.error}")
        return "\n".join(lines)


@dataclass
class TreeView:
    """A materialized subtree, nested for rendering."""

    node: TreeNode
    children: list[TreeView] = field(default_factory=list)
