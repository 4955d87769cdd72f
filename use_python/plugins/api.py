from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from use_python.core import Command, Context


@dataclass(frozen=True)
class TaskHandler:
    kind: str


class TaskPlugin(Protocol):
    """
    A task plugin converts a raw [[task]] table into an executable Command.

    A plugin must:
    - declare which task kinds it handles
    - validate its task syntax
    - build the InvocationSpec(s) the returned Command runs
    """

    name: str

    def handlers(self) -> Sequence[TaskHandler]: ...

    def is_available(self, ctx: Context) -> tuple[bool, str | None]: ...

    def from_dict(self, raw: dict[str, Any], ctx: Context) -> Command: ...
