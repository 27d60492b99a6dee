"""Filesystem helpers: presence checks, markers and directory management.

Whether a repository is cloned is always answered by looking at the disk at
call time. Nothing here caches.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from .models import RepoState

logger = logging.getLogger(__name__)

GIT_DIR_NAME = ".git"


def repo_state(path: Path) -> RepoState:
    """Return ``CLONED`` when ``path`` holds a ``.git`` entry (file or directory)."""

    if not path.is_dir():
        return RepoState.MISSING
    if (path / GIT_DIR_NAME).exists():
        return RepoState.CLONED
    return RepoState.MISSING


def is_dirty(porcelain: str) -> bool:
    return bool(porcelain.strip())


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def remove_directory(path: Path) -> bool:
    """Delete ``path`` if present. Returns ``False`` when there was nothing to remove."""

    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if not path.exists():
        return False
    shutil.rmtree(path)
    return True


def write_config_marker(node_dir: Path, config_file: Path, link_name: str, marker_name: str) -> Path:
    """Make ``node_dir`` advertise the config file that defines its children.

    A symlink named ``link_name`` pointing at ``config_file`` is preferred; a
    plain ``marker_name`` text file holding the path is written where symlinks
    cannot be created.
    """

    ensure_directory(node_dir)
    target = config_file.resolve()
    link = node_dir / link_name
    if not link.is_symlink() and link.is_file() and link.resolve() == target:
        return link
    if link.is_symlink():
        if Path(os.readlink(link)) == target:
            return link
        link.unlink()
    if not link.exists():
        try:
            link.symlink_to(target)
            return link
        except OSError as exc:
            logger.debug("Symlink %s -> %s failed (%s); writing marker file", link, target, exc)
    marker = node_dir / marker_name
    content = f"# This directory is a muno config reference node\n{target}\n"
    if not marker.exists() or marker.read_text(encoding="utf-8") != content:
        marker.write_text(content, encoding="utf-8")
    return marker
