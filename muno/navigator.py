"""Path-based navigation over the tree of stitched configuration levels.

Nothing here is cached between calls. Every operation starts from the root
config file, walks the path segment by segment and asks the disk whether
each repository is present. Missing repositories are cloned when the walk
needs their contents.
"""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, as_completed, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator

from .defaults import Defaults
from .exceptions import GitCommandError, MunoError, ResolutionError, ValidationError
from .fs import is_dirty, remove_directory, repo_state
from .git import GitClient
from .loader import ConfigLevel, ConfigLoader
from .models import BulkResult, ChildInfo, NodeStatus, NodeType, RepoState, TreeNode, TreeView
from .resolver import ConfigResolver
from .state import SessionState
from .tree_config import FETCH_AUTO, FETCH_EAGER, FETCH_LAZY, NodeDefinition, auto_discover_config

logger = logging.getLogger(__name__)


def split_path(path: str) -> list[str]:
    return [part for part in path.strip().split("/") if part and part != "."]


def join_path(parent: str, name: str) -> str:
    return f"/{name}" if parent == "/" else f"{parent}/{name}"


def normalize_path(path: str, current: str = "/") -> str:
    """Return an absolute tree path. Relative input is interpreted against ``current``."""

    raw = path.strip()
    parts = [] if raw.startswith("/") else split_path(current)
    for segment in split_path(raw):
        if segment == "..":
            if parts:
                parts.pop()
        else:
            parts.append(segment)
    return "/" + "/".join(parts)


def is_within(path: str, ancestor: str) -> bool:
    if ancestor == "/":
        return True
    return path == ancestor or path.startswith(ancestor + "/")


@dataclass
class _Frame:
    """A node reached during one walk, plus the level that declares it."""

    node: TreeNode
    definition: NodeDefinition | None = None
    parent: ConfigLevel | None = None
    level: ConfigLevel | None = None
    level_loaded: bool = False


def _unique(nodes: Iterable[NodeDefinition]) -> Iterator[NodeDefinition]:
    # Duplicate sibling names resolve to the first definition.
    seen: set[str] = set()
    for node in nodes:
        if node.name in seen:
            continue
        seen.add(node.name)
        yield node


class TreeNavigator:
    def __init__(
        self,
        root_config: Path,
        defaults: Defaults,
        resolver: ConfigResolver,
        git: GitClient,
        *,
        state_file: Path | None = None,
    ):
        self.root_config = root_config
        self.root_dir = root_config.parent
        self.defaults = defaults
        self.resolver = resolver
        self.git = git
        self.loader = ConfigLoader(defaults, resolver, git)
        self.state_file = state_file or self.root_dir / defaults.files.state_file

    # -- queries ---------------------------------------------------------

    def resolve(self, path: str, *, materialize: bool = False, clone: bool = True) -> TreeNode:
        """Resolve an absolute tree path.

        Eager repositories on the way are cloned if missing, as are lazy ones
        the walk has to descend through. A lazy target is only cloned with
        ``materialize``. With ``clone=False`` nothing is cloned and the walk
        stops at the first node whose children are not on disk. Segments left
        over after a leaf are dropped and the leaf is returned.
        """

        return self._walk(path, materialize=materialize, clone=clone).node

    def list_children(self, path: str) -> list[ChildInfo]:
        frame = self._walk(path)
        level = self._load_children(frame)
        if level is None:
            return []
        return [self._child_info(self._child_frame(level, item, frame.node.path)) for item in _unique(level.tree.nodes)]

    def tree(self, path: str = "/", depth: int | None = None) -> TreeView:
        return self._view(self._walk(path, clone=False), depth)

    def status(self, path: str = "/", *, recursive: bool = False) -> list[NodeStatus]:
        statuses: list[NodeStatus] = []
        for frame in self._frames(self._walk(path, clone=False), None if recursive else 1):
            node = frame.node
            state = node.state
            branch = None
            if self._is_cloned_repo(frame):
                try:
                    if is_dirty(self.git.status(node.fs_path)):
                        state = RepoState.MODIFIED
                    branch = self.git.current_branch(node.fs_path) or None
                except GitCommandError as exc:
                    logger.warning("Could not read git status of %s: %s", node.path, exc)
            statuses.append(
                NodeStatus(
                    path=node.path,
                    name=node.name,
                    type=node.type,
                    lazy=node.lazy,
                    state=state,
                    branch=branch,
                )
            )
        return statuses

    def current_path(self) -> str:
        return self.load_state().current_node_path

    def load_state(self) -> SessionState:
        return SessionState.load(self.state_file)

    def auto_discover_config(self, directory: Path) -> tuple[Path | None, bool]:
        return auto_discover_config(directory, self.defaults.files.config_names)

    # -- mutations -------------------------------------------------------

    def use_node(self, path: str) -> TreeNode:
        """Move the current position, cloning the target when navigation may do so."""

        state = self.load_state()
        target = normalize_path(path, state.current_node_path)
        auto_clone = self.resolver.get_bool(
            "behavior.auto_clone_on_nav", default=self.defaults.behavior.auto_clone_on_nav
        )
        frame = self._walk(target, materialize=auto_clone)
        self._load_children(frame)
        state.current_node_path = frame.node.path
        state.save(self.state_file)
        logger.info("Current node is now %s", frame.node.path)
        return frame.node

    def clear_current(self) -> None:
        state = self.load_state()
        state.current_node_path = "/"
        state.save(self.state_file)
        logger.info("Current node reset to /")

    def add_repo(self, parent_path: str, name: str, url: str, lazy: bool | None = None) -> TreeNode:
        """Declare a repository under ``parent_path`` and persist the owning file.

        ``lazy=None`` leaves the fetch mode on ``auto``. Non-lazy repositories
        are cloned straight away.
        """

        name = name.strip()
        url = url.strip()
        if not name or "/" in name or name in (".", ".."):
            raise ValidationError(f"invalid node name: {name!r}")
        if not url:
            raise ValidationError("repository url is required")
        frame = self._walk(parent_path)
        level = self._load_children(frame)
        if level is None:
            raise ValidationError(f"{frame.node.path} has no configuration to add children to")
        if level.tree.find_node(name) is not None:
            raise ValidationError(f"node {name} already exists under {frame.node.path}")
        fetch = FETCH_AUTO if lazy is None else (FETCH_LAZY if lazy else FETCH_EAGER)
        definition = NodeDefinition(name=name, url=url, fetch=fetch)
        level.tree.nodes.append(definition)
        level.tree.save()
        logger.info("Added %s under %s in %s", name, frame.node.path, level.tree.file)
        child = self._child_frame(level, definition, frame.node.path)
        if not child.node.lazy and child.node.state == RepoState.MISSING:
            self._materialize(child)
        return child.node

    def remove_node(self, path: str) -> bool:
        """Drop a node from its level's file and delete its directory.

        Returns whether a directory was removed.
        """

        state = self.load_state()
        target = normalize_path(path, state.current_node_path)
        segments = split_path(target)
        if not segments:
            raise ValidationError("cannot remove the workspace root")
        parent_path = normalize_path("/" + "/".join(segments[:-1]))
        frame = self._walk(parent_path)
        level = self._load_children(frame) if frame.node.path == parent_path else None
        name = segments[-1]
        if level is None or level.tree.find_node(name) is None:
            raise ResolutionError(f"node {name!r} not found", target)
        node_dir = level.node_dir(name)
        level.tree.remove_node(name)
        level.tree.save()
        removed = remove_directory(node_dir)
        if removed:
            logger.info("Removed %s and deleted %s", target, node_dir)
        else:
            logger.info("Removed %s (no directory at %s)", target, node_dir)
        if is_within(state.current_node_path, target):
            state.current_node_path = parent_path
            state.save(self.state_file)
        return removed

    def clone_lazy_repos(
        self, start_path: str = "/", *, recursive: bool = False, include_lazy: bool = False
    ) -> BulkResult:
        """Clone the start node if needed, then its missing eager children.

        With ``recursive`` the walk continues through every level below,
        loading configs that live inside freshly cloned repositories. Lazy
        children are left alone unless ``include_lazy`` is set. Failures are
        collected in the returned result.
        """

        workers = self.resolver.get_int(
            "behavior.max_parallel_clones", default=self.defaults.behavior.max_parallel_clones
        )
        start = self._walk(start_path)
        run = _BulkClone(self, recursive=recursive, include_lazy=include_lazy)
        with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
            run.execute(pool, start)
        logger.info("%s", run.result.summary())
        return run.result

    def pull(self, path: str = "/", *, recursive: bool = False) -> BulkResult:
        result = BulkResult("pull")
        targets = self._git_targets(path, recursive, result)
        timeout = self.resolver.get_int("git.pull_timeout", default=self.defaults.git.pull_timeout)
        self._run_batch(result, targets, lambda fs_path: self.git.pull(fs_path, timeout=timeout or None))
        return result

    def commit(self, path: str, message: str, *, recursive: bool = False) -> BulkResult:
        """Commit every change in the cloned repositories at ``path``.

        Repositories with a clean working tree are reported as skipped.
        """

        if not message.strip():
            raise ValidationError("commit message is required")
        result = BulkResult("commit")
        dirty: list[_Frame] = []
        for frame in self._git_targets(path, recursive, result):
            try:
                porcelain = self.git.status(frame.node.fs_path)
            except GitCommandError as exc:
                logger.warning("Could not read git status of %s: %s", frame.node.path, exc)
                result.add_failure(frame.node.path, exc)
                continue
            if is_dirty(porcelain):
                dirty.append(frame)
            else:
                logger.debug("Nothing to commit in %s", frame.node.path)
                result.skipped.append(frame.node.path)
        self._run_batch(result, dirty, lambda fs_path: self.git.commit(fs_path, message))
        return result

    def push(self, path: str = "/", *, recursive: bool = False) -> BulkResult:
        result = BulkResult("push")
        targets = self._git_targets(path, recursive, result)
        self._run_batch(result, targets, self.git.push)
        return result

    # -- walking ---------------------------------------------------------

    def _root_frame(self) -> _Frame:
        level = self.loader.load_root(self.root_config)
        if level.tree.workspace.root_repo:
            state = repo_state(self.root_dir)
        else:
            state = RepoState.CLONED
        node = TreeNode(
            name=level.tree.workspace.name,
            path="/",
            type=NodeType.ROOT,
            fs_path=self.root_dir,
            url=level.tree.workspace.root_repo,
            state=state,
        )
        frame = _Frame(node=node, level=level, level_loaded=True)
        self._fill_children(frame)
        return frame

    def _walk(self, path: str, *, materialize: bool = False, clone: bool = True) -> _Frame:
        segments = split_path(normalize_path(path))
        frame = self._root_frame()
        for index, segment in enumerate(segments):
            level = self._load_children(frame) if clone else self._loaded_level(frame)
            if level is None:
                logger.debug("%s is a leaf; ignoring the rest of %s", frame.node.path, path)
                break
            definition = level.tree.find_node(segment)
            if definition is None:
                raise ResolutionError(
                    f"node {segment!r} not found under {frame.node.path}",
                    "/" + "/".join(segments[: index + 1]),
                )
            child = self._child_frame(level, definition, frame.node.path)
            last = index == len(segments) - 1
            node = child.node
            if clone and node.type == NodeType.REPO and node.state == RepoState.MISSING:
                if not node.lazy or materialize or not last:
                    self._materialize(child)
            frame = child
        return frame

    def _child_frame(self, level: ConfigLevel, definition: NodeDefinition, parent_path: str) -> _Frame:
        path = join_path(parent_path, definition.name)
        node_dir = level.node_dir(definition.name)
        if definition.is_config_ref:
            config_file = self.loader.config_file_for(definition, level)
            node = TreeNode(
                name=definition.name,
                path=path,
                type=NodeType.CONFIG,
                fs_path=node_dir,
                state=RepoState.CLONED if config_file.is_file() else RepoState.MISSING,
            )
        else:
            node = TreeNode(
                name=definition.name,
                path=path,
                type=NodeType.REPO,
                fs_path=node_dir,
                url=definition.url,
                lazy=level.is_lazy(definition, self.resolver.cli_fetch()),
                state=repo_state(node_dir),
            )
        return _Frame(node=node, definition=definition, parent=level)

    def _load_children(self, frame: _Frame) -> ConfigLevel | None:
        if frame.level_loaded:
            return frame.level
        node = frame.node
        if node.type == NodeType.CONFIG:
            frame.level = self.loader.load_delegated(frame.definition, node.fs_path, frame.parent, node.path)
        else:
            frame.level = self.loader.load_discovered(frame.definition, node.fs_path, frame.parent, node.path)
            if frame.level is None and node.state == RepoState.MISSING:
                return None
        frame.level_loaded = True
        self._fill_children(frame)
        return frame.level

    def _loaded_level(self, frame: _Frame) -> ConfigLevel | None:
        """Children as far as the disk has them; a config file not on disk yet makes a leaf."""

        if self._is_absent_config(frame):
            return None
        return self._load_children(frame)

    def _materialize(self, frame: _Frame) -> None:
        node = frame.node
        self.loader.clone_repo(frame.definition, node.fs_path, frame.parent)
        node.state = repo_state(node.fs_path)

    def _fill_children(self, frame: _Frame) -> None:
        if frame.level is not None:
            frame.node.children = [item.name for item in _unique(frame.level.tree.nodes)]
        frame.node.children_loaded = True

    def _frames(self, start: _Frame, max_depth: int | None) -> Iterator[_Frame]:
        """Pre-order walk over what is already on disk; never clones."""

        stack: list[tuple[_Frame, int]] = [(start, 0)]
        while stack:
            frame, depth = stack.pop()
            yield frame
            if max_depth is not None and depth >= max_depth:
                continue
            level = self._loaded_level(frame)
            if level is None:
                continue
            children = [self._child_frame(level, item, frame.node.path) for item in _unique(level.tree.nodes)]
            stack.extend((child, depth + 1) for child in reversed(children))

    def _view(self, frame: _Frame, depth: int | None) -> TreeView:
        view = TreeView(node=frame.node)
        if depth is not None and depth <= 0:
            return view
        level = self._loaded_level(frame)
        if level is None:
            return view
        remaining = None if depth is None else depth - 1
        for item in _unique(level.tree.nodes):
            view.children.append(self._view(self._child_frame(level, item, frame.node.path), remaining))
        return view

    def _git_targets(self, path: str, recursive: bool, result: BulkResult) -> list[_Frame]:
        """Cloned repositories at ``path``; absent ones are recorded as skipped."""

        targets: list[_Frame] = []
        for frame in self._frames(self._walk(path, clone=False), None if recursive else 1):
            if self._is_cloned_repo(frame):
                targets.append(frame)
            elif frame.node.type == NodeType.REPO or self._is_absent_config(frame):
                result.skipped.append(frame.node.path)
        return targets

    def _run_batch(
        self, result: BulkResult, targets: list[_Frame], action: Callable[[Path], None]
    ) -> None:
        if targets:
            workers = self.resolver.get_int(
                "behavior.max_parallel_pulls", default=self.defaults.behavior.max_parallel_pulls
            )
            with ThreadPoolExecutor(max_workers=max(1, min(workers, len(targets)))) as pool:
                futures = {pool.submit(action, frame.node.fs_path): frame for frame in targets}
                for future in as_completed(futures):
                    frame = futures[future]
                    try:
                        future.result()
                    except (MunoError, OSError) as exc:
                        logger.warning("%s of %s failed: %s", result.operation.capitalize(), frame.node.path, exc)
                        result.add_failure(frame.node.path, exc)
                    else:
                        logger.debug("%s done for %s", result.operation.capitalize(), frame.node.path)
                        result.succeeded.append(frame.node.path)
        result.succeeded.sort()
        result.skipped.sort()
        result.failed.sort(key=lambda failure: failure.path)
        logger.info("%s", result.summary())

    @staticmethod
    def _is_absent_config(frame: _Frame) -> bool:
        return frame.node.type == NodeType.CONFIG and frame.node.state == RepoState.MISSING

    def _is_cloned_repo(self, frame: _Frame) -> bool:
        node = frame.node
        if node.state == RepoState.MISSING:
            return False
        if node.type == NodeType.REPO:
            return True
        return node.type == NodeType.ROOT and bool(node.url)

    @staticmethod
    def _child_info(frame: _Frame) -> ChildInfo:
        node = frame.node
        return ChildInfo(
            name=node.name,
            path=node.path,
            type=node.type,
            lazy=node.lazy,
            state=node.state,
            url=node.url,
        )


class _BulkClone:
    """One bulk clone run.

    Clones are handed to the pool; reading the config that lives inside a
    repository waits for that repository's clone and happens on the calling
    thread, which then schedules the newly discovered children.
    """

    def __init__(self, navigator: TreeNavigator, *, recursive: bool, include_lazy: bool):
        self.navigator = navigator
        self.recursive = recursive
        self.include_lazy = include_lazy
        self.result = BulkResult("clone")
        self.pending: dict[Future[None], tuple[_Frame, int]] = {}

    def execute(self, pool: ThreadPoolExecutor, start: _Frame) -> None:
        self._visit(pool, start, 0, explicit=True)
        while self.pending:
            done, _ = wait(self.pending, return_when=FIRST_COMPLETED)
            for future in done:
                frame, depth = self.pending.pop(future)
                try:
                    future.result()
                except (MunoError, OSError) as exc:
                    logger.warning("Clone of %s failed: %s", frame.node.path, exc)
                    self.result.add_failure(frame.node.path, exc)
                    continue
                frame.node.state = repo_state(frame.node.fs_path)
                self.result.succeeded.append(frame.node.path)
                self._expand(pool, frame, depth)
        self.result.succeeded.sort()
        self.result.failed.sort(key=lambda failure: failure.path)

    def _visit(self, pool: ThreadPoolExecutor, frame: _Frame, depth: int, *, explicit: bool = False) -> None:
        node = frame.node
        if node.type == NodeType.REPO and node.state == RepoState.MISSING:
            if node.needs_clone and not (explicit or self.include_lazy):
                self.result.skipped.append(node.path)
                return
            future = pool.submit(
                self.navigator.loader.clone_repo, frame.definition, node.fs_path, frame.parent
            )
            self.pending[future] = (frame, depth)
            return
        self._expand(pool, frame, depth)

    def _expand(self, pool: ThreadPoolExecutor, frame: _Frame, depth: int) -> None:
        if depth > 0 and not self.recursive:
            return
        try:
            level = self.navigator._load_children(frame)
        except ResolutionError as exc:
            logger.warning("Cannot expand %s: %s", frame.node.path, exc)
            self.result.add_failure(frame.node.path, exc)
            return
        if level is None:
            return
        for item in _unique(level.tree.nodes):
            child = self.navigator._child_frame(level, item, frame.node.path)
            self._visit(pool, child, depth + 1)
