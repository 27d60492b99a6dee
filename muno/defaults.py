"""Built-in defaults shared by every component.

The defaults are parsed once from the embedded YAML document below into a
frozen ``Defaults`` value. Components receive it explicitly; nothing mutates it
after construction.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import yaml

DEFAULTS_YAML = """
workspace:
  name: muno-workspace
  repos_dir: repos
  root_repo: ""

detection:
  eager_patterns:
    - -monorepo
    - -munorepo
    - -muno
    - -metarepo
    - -meta
    - -platform
    - -workspace
    - -root-repo
    - -repo
    - -rc

files:
  config_names:
    - muno.yaml
    - muno.yml
    - .muno.yaml
    - .muno.yml
  state_file: .muno-state.json
  marker_name: .muno-ref

git:
  default_remote: origin
  default_branch: main
  clone_timeout: 300
  pull_timeout: 120
  shallow_depth: 0

behavior:
  auto_clone_on_nav: true
  max_parallel_clones: 4
  max_parallel_pulls: 8
  interactive: true

display:
  tree:
    indent: "  "
    branch: "├── "
    last_branch: "└── "
    vertical: "│   "
    space: "    "
  icons:
    workspace: "🌳"
    config: "📁"
    cloned: "📦"
    lazy: "💤"
    modified: "📝"
"""


@dataclass(frozen=True)
class WorkspaceDefaults:
    name: str
    repos_dir: str
    root_repo: str


@dataclass(frozen=True)
class DetectionDefaults:
    eager_patterns: tuple[str, ...]


@dataclass(frozen=True)
class FilesDefaults:
    config_names: tuple[str, ...]
    state_file: str
    marker_name: str


@dataclass(frozen=True)
class GitDefaults:
    default_remote: str
    default_branch: str
    clone_timeout: int
    pull_timeout: int
    shallow_depth: int


@dataclass(frozen=True)
class BehaviorDefaults:
    auto_clone_on_nav: bool
    max_parallel_clones: int
    max_parallel_pulls: int
    interactive: bool


@dataclass(frozen=True)
class Defaults:
    """Process-wide read-only configuration compiled into the package."""

    workspace: WorkspaceDefaults
    detection: DetectionDefaults
    files: FilesDefaults
    git: GitDefaults
    behavior: BehaviorDefaults
    display: dict[str, Any]
    raw: dict[str, Any]

    def as_dict(self) -> dict[str, Any]:
        """Return a fresh nested map suitable as the lowest resolver layer."""

        return copy.deepcopy(self.raw)


def parse_defaults(text: str) -> Defaults:
    data = yaml.safe_load(text) or {}
    workspace = data.get("workspace", {})
    detection = data.get("detection", {})
    files = data.get("files", {})
    git = data.get("git", {})
    behavior = data.get("behavior", {})
    return Defaults(
        workspace=WorkspaceDefaults(
            name=str(workspace.get("name") or ""),
            repos_dir=str(workspace.get("repos_dir") or ""),
            root_repo=str(workspace.get("root_repo") or ""),
        ),
        detection=DetectionDefaults(
            eager_patterns=tuple(detection.get("eager_patterns") or ()),
        ),
        files=FilesDefaults(
            config_names=tuple(files.get("config_names") or ()),
            state_file=str(files.get("state_file") or ""),
            marker_name=str(files.get("marker_name") or ""),
        ),
        git=GitDefaults(
            default_remote=str(git.get("default_remote") or "origin"),
            default_branch=str(git.get("default_branch") or "main"),
            clone_timeout=int(git.get("clone_timeout") or 0),
            pull_timeout=int(git.get("pull_timeout") or 0),
            shallow_depth=int(git.get("shallow_depth") or 0),
        ),
        behavior=BehaviorDefaults(
            auto_clone_on_nav=bool(behavior.get("auto_clone_on_nav", True)),
            max_parallel_clones=int(behavior.get("max_parallel_clones") or 1),
            max_parallel_pulls=int(behavior.get("max_parallel_pulls") or 1),
            interactive=bool(behavior.get("interactive", True)),
        ),
        display=copy.deepcopy(data.get("display", {})),
        raw=data,
    )


@lru_cache(maxsize=1)
def load_defaults() -> Defaults:
    """Parse the embedded defaults once per process."""

    return parse_defaults(DEFAULTS_YAML)
