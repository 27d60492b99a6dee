"""Custom exception hierarchy for muno."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .models import BulkResult


class MunoError(Exception):
    """Base error for all custom exceptions."""


class ConfigError(MunoError):
    """Base error for configuration files."""

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class ConfigReadError(ConfigError):
    """Raised when a configuration file cannot be read or written."""


class ConfigParseError(ConfigError):
    """Raised when a configuration or state file is not valid YAML/JSON."""


class ConfigValidationError(ConfigError):
    """Raised when a configuration violates a structural rule."""


class CircularConfigError(ConfigValidationError):
    """Raised when config delegation loops back to a file already on the chain."""

    def __init__(self, chain: list[Path]):
        joined = " -> ".join(str(item) for item in chain)
        super().__init__(f"circular configuration reference: {joined}", chain[-1] if chain else None)
        self.chain = chain


class ResolutionError(MunoError):
    """Raised when a tree path cannot be resolved."""

    def __init__(self, message: str, tree_path: str):
        super().__init__(f"{message} (path: {tree_path})")
        self.tree_path = tree_path


class GitCommandError(MunoError):
    """Raised when a git invocation fails."""

    def __init__(self, command: list[str], returncode: int, stderr: str | None = None):
        message = "Git command failed"
        if command:
            message = f"Git command failed: {' '.join(command)}"
        if stderr and stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr or ""


class GitTimeoutError(GitCommandError):
    """Raised when a git invocation exceeds its timeout."""

    def __init__(self, command: list[str], timeout: float):
        super().__init__(command, -1, f"timed out after {timeout:g}s")
        self.timeout = timeout


class BulkOperationError(MunoError):
    """Raised when a caller decides any failure in a batch fails the batch."""

    def __init__(self, result: BulkResult):
        super().__init__(result.summary())
        self.result = result


class ValidationError(MunoError):
    """Raised when user input is invalid."""


class UserAbort(MunoError):
    """Raised when the user cancels an interactive flow."""
