"""Interactive prompt helpers built on InquirerPy."""

from __future__ import annotations

import sys
from typing import Any, Sequence

from InquirerPy import inquirer
from InquirerPy.base.control import Choice

from .exceptions import UserAbort, ValidationError
from .models import ChildInfo


def is_interactive() -> bool:
    return sys.stdin.isatty()


def _ensure_tty() -> None:
    if not is_interactive():
        raise ValidationError("Interactive mode requires a TTY. Pass a node path to run non-interactively.")


def fuzzy_select(message: str, choices: Sequence[Choice | str]) -> Any:
    _ensure_tty()
    selection = inquirer.fuzzy(message=message, choices=choices).execute()
    if selection is None:
        raise UserAbort("No node selected.")
    return selection


def build_node_choices(children: Sequence[ChildInfo], *, include_parent: bool = True) -> list[Choice]:
    """Return picker choices for a node's children, with ``..`` first when navigable."""

    result: list[Choice] = []
    if include_parent:
        result.append(Choice(value="..", name=".. (parent)"))
    for child in children:
        label = f"{child.name} · {child.type.value} · {child.state.value}"
        if child.lazy:
            label = f"{label} · lazy"
        result.append(Choice(value=child.name, name=label))
    return result
