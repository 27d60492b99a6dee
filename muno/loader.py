"""Loading the configuration level that defines a node's children.

A level is one config file plus the directory its children are materialized
under. Levels are loaded on demand during a traversal and dropped afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .classifier import PatternClassifier
from .defaults import Defaults
from .exceptions import CircularConfigError, ConfigError, GitCommandError, ResolutionError
from .fs import remove_directory, repo_state, write_config_marker
from .git import GitClient
from .models import RepoState
from .resolver import ConfigResolver
from .tree_config import ConfigTree, NodeDefinition, auto_discover_config, load_tree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigLevel:
    tree: ConfigTree
    owner_dir: Path
    chain: tuple[Path, ...]
    classifier: PatternClassifier

    @property
    def children_dir(self) -> Path:
        return self.owner_dir / self.tree.repos_dir

    def node_dir(self, name: str) -> Path:
        return self.children_dir / name

    def is_lazy(self, node: NodeDefinition, fetch: str | None = None) -> bool:
        return self.classifier.effective_lazy(node, fetch)


class ConfigLoader:
    """Produces child levels for config-reference and repo+config nodes."""

    def __init__(self, defaults: Defaults, resolver: ConfigResolver, git: GitClient):
        self.defaults = defaults
        self.resolver = resolver
        self.git = git
        self._base_classifier = PatternClassifier.from_defaults(defaults)

    def load_root(self, config_file: Path) -> ConfigLevel:
        tree = load_tree(config_file, self.defaults)
        root_dir = config_file.parent
        logger.debug("Loaded root configuration %s", config_file)
        return ConfigLevel(
            tree=tree,
            owner_dir=root_dir,
            chain=(config_file.resolve(),),
            classifier=self._base_classifier.with_level(tree.defaults),
        )

    def config_file_for(self, definition: NodeDefinition, parent: ConfigLevel) -> Path:
        """Resolve a node's ``config`` against the directory of the file that declares it."""

        target = Path(definition.config).expanduser()
        if target.is_absolute():
            return target
        base = parent.tree.path or parent.owner_dir
        return base / target

    def load_delegated(
        self, definition: NodeDefinition, node_dir: Path, parent: ConfigLevel, tree_path: str
    ) -> ConfigLevel:
        config_file = self.config_file_for(definition, parent)
        if not config_file.is_file():
            raise ResolutionError(
                f"config file {config_file} for node {definition.name} not found", tree_path
            )
        level = self._load_level(config_file, node_dir, parent, tree_path)
        write_config_marker(
            node_dir,
            config_file,
            self.defaults.files.config_names[0],
            self.defaults.files.marker_name,
        )
        return level

    def load_discovered(
        self,
        definition: NodeDefinition,
        node_dir: Path,
        parent: ConfigLevel,
        tree_path: str,
        *,
        clone: bool = False,
    ) -> ConfigLevel | None:
        """Return the level hosted inside a repository, cloning it first when asked.

        ``None`` means the repository is absent or carries no config file, so the
        node has no known children.
        """

        if repo_state(node_dir) == RepoState.MISSING:
            if not clone:
                return None
            self.clone_repo(definition, node_dir, parent)
        config_file, found = auto_discover_config(node_dir, self.defaults.files.config_names)
        if not found or config_file is None:
            return None
        return self._load_level(config_file, node_dir, parent, tree_path)

    def clone_repo(self, definition: NodeDefinition, node_dir: Path, parent: ConfigLevel) -> None:
        overrides = parent.tree.overrides
        timeout = self.resolver.get_int("git.clone_timeout", definition, level=overrides)
        depth = self.resolver.get_int("git.shallow_depth", definition, level=overrides)
        branch = self.resolver.get_default_branch(definition, level=overrides)
        if not definition.default_branch and branch == self.defaults.git.default_branch:
            # The embedded branch is a fallback only; let git check out the remote HEAD.
            branch = None
        existed = node_dir.exists()
        logger.info("Cloning %s into %s", definition.url, node_dir)
        try:
            self.git.clone(
                definition.url,
                node_dir,
                branch=branch,
                depth=depth or None,
                timeout=timeout or None,
            )
        except GitCommandError:
            # A killed clone can leave a .git behind that would read as cloned.
            if not existed and remove_directory(node_dir):
                logger.debug("Removed partial clone at %s", node_dir)
            raise

    def _load_level(
        self, config_file: Path, owner_dir: Path, parent: ConfigLevel, tree_path: str
    ) -> ConfigLevel:
        resolved = config_file.resolve()
        if resolved in parent.chain:
            raise CircularConfigError([*parent.chain, resolved])
        try:
            tree = load_tree(config_file, self.defaults)
        except ConfigError as exc:
            raise type(exc)(f"{exc} (node: {tree_path})", exc.path) from exc
        logger.debug("Loaded configuration %s for %s", config_file, tree_path)
        return ConfigLevel(
            tree=tree,
            owner_dir=owner_dir,
            chain=(*parent.chain, resolved),
            classifier=self._base_classifier.with_level(tree.defaults),
        )
