from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from use_python.plugin_api import (
    Command,
    ConfigurationError,
    Context,
    PythonTask,
    TaskHandler,
    invocation_from_dict,
)

_ACTIONS = {"build", "serve", "gh-deploy"}


@dataclass(frozen=True)
class MkdocsTaskPlugin:
    """
    [[task]] kind = "mkdocs": runs `python -m mkdocs <action>` in the docs directory.

        [[task]]
        name = "docs"
        kind = "mkdocs"
        action = "build"
        work_dir = "docs"
        strict = true
    """

    name: str = "example.mkdocs"

    def handlers(self) -> Sequence[TaskHandler]:
        return (TaskHandler(kind="mkdocs"),)

    def is_available(self, ctx: Context) -> tuple[bool, str | None]:
        return True, None

    def from_dict(self, raw: dict[str, Any], ctx: Context) -> Command:
        fields = dict(raw)
        name = fields.get("name")
        if not isinstance(name, str) or not name:
            raise ConfigurationError("mkdocs task requires 'name'")
        action = fields.pop("action", "build")
        if action not in _ACTIONS:
            raise ConfigurationError(f"mkdocs 'action' must be one of {', '.join(sorted(_ACTIONS))}")
        strict = fields.pop("strict", False)
        if not isinstance(strict, bool):
            raise ConfigurationError("mkdocs 'strict' must be a boolean if present")
        if "command" in fields:
            raise ConfigurationError("mkdocs tasks take 'action' instead of 'command'")

        command = [action]
        if strict and action == "build":
            command.append("--strict")
        fields["command"] = command
        fields.setdefault("work_dir", "docs")

        spec = invocation_from_dict(fields, module="mkdocs")
        return PythonTask(
            name,
            spec,
            requires_packages=bool(fields.get("requires_packages", True)),
        )


PLUGIN = MkdocsTaskPlugin()
