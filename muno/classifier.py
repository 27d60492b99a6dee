"""Lazy versus eager fetch policy."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from .defaults import Defaults
from .tree_config import FETCH_EAGER, FETCH_LAZY, NodeDefinition


def repo_name_from_url(url: str) -> str:
    """Return the final path segment of ``url`` without a trailing ``.git``."""

    name = url.strip().rstrip("/")
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class PatternClassifier:
    """Decides whether a node is fetched on first use (lazy) or up front (eager)."""

    eager_suffixes: tuple[str, ...]
    eager_regex: str = ""

    @classmethod
    def from_defaults(cls, defaults: Defaults, level_defaults: dict | None = None) -> PatternClassifier:
        level_defaults = level_defaults or {}
        return cls(
            eager_suffixes=tuple(pattern.lower() for pattern in defaults.detection.eager_patterns),
            eager_regex=str(level_defaults.get("eager_pattern") or ""),
        )

    def with_level(self, level_defaults: dict | None) -> PatternClassifier:
        level_defaults = level_defaults or {}
        return PatternClassifier(
            eager_suffixes=self.eager_suffixes,
            eager_regex=str(level_defaults.get("eager_pattern") or ""),
        )

    def matches_eager(self, name: str) -> bool:
        candidate = name.lower()
        return any(candidate.endswith(suffix) for suffix in self.eager_suffixes)

    def is_meta_repo(self, node: NodeDefinition) -> bool:
        for candidate in _candidates(node):
            if self.matches_eager(candidate):
                return True
            if self.eager_regex and re.search(self.eager_regex, candidate, re.IGNORECASE):
                return True
        return False

    def effective_lazy(self, node: NodeDefinition, fetch: str | None = None) -> bool:
        """Explicit ``lazy``/``eager`` always win; anything else is pattern based."""

        mode = (fetch or node.fetch or "").strip().lower()
        if mode == FETCH_EAGER:
            return False
        if mode == FETCH_LAZY:
            return True
        # auto, empty and unrecognised modes all fall through to pattern detection
        if self.is_meta_repo(node):
            return False
        return True


def _candidates(node: NodeDefinition) -> Iterable[str]:
    yield node.name
    if node.url:
        yield repo_name_from_url(node.url)
