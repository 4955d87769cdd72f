from __future__ import annotations

import shutil
from dataclasses import dataclass
from typing import Any, Sequence

from use_python.core import Command, Context
from use_python.errors import ConfigurationError
from use_python.invocation import InvocationSpec
from use_python.plugins.api import TaskHandler, TaskPlugin
from use_python.util import sh_join

INVOCATION_KEYS = {
    "module",
    "command",
    "work_dir",
    "create_work_dir",
    "python_args",
    "extra_args",
    "environment",
    "output_prefix",
    "log_level",
}
TASK_KEYS = {"name", "kind", "requires_packages", "description"}


def _str_list(raw: dict[str, Any], key: str) -> list[str]:
    value = raw.get(key, [])
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(x, (str, int, float)) for x in value):
        return [str(x) for x in value]
    raise ConfigurationError(f"'{key}' must be a string or a list of strings")


def invocation_from_dict(raw: dict[str, Any], *, module: str | None = None) -> InvocationSpec:
    """Build an InvocationSpec from task fields; `module` presets the module for module-specific kinds."""
    unknown = set(raw) - INVOCATION_KEYS - TASK_KEYS
    if unknown:
        raise ConfigurationError(f"Unknown task field(s): {', '.join(sorted(unknown))}")

    if module is not None and raw.get("module") not in (None, module):
        raise ConfigurationError(f"'module' is fixed to {module!r} for this task kind")
    mod = module if module is not None else raw.get("module")
    if mod is not None and not isinstance(mod, str):
        raise ConfigurationError("'module' must be a string if present")

    work_dir = raw.get("work_dir")
    if work_dir is not None and not isinstance(work_dir, str):
        raise ConfigurationError("'work_dir' must be a string if present")

    create_work_dir = raw.get("create_work_dir", True)
    if not isinstance(create_work_dir, bool):
        raise ConfigurationError("'create_work_dir' must be a boolean if present")

    environment = raw.get("environment", {})
    if not isinstance(environment, dict):
        raise ConfigurationError("'environment' must be a table if present")

    output_prefix = raw.get("output_prefix", "\t")
    if not isinstance(output_prefix, str):
        raise ConfigurationError("'output_prefix' must be a string if present")

    return InvocationSpec.create(
        module=mod,
        command=raw.get("command"),
        work_dir=work_dir,
        create_work_dir=create_work_dir,
        python_args=_str_list(raw, "python_args"),
        extra_args=_str_list(raw, "extra_args"),
        environment=environment,
        output_prefix=output_prefix,
        log_level=raw.get("log_level", "lifecycle"),
    )


class PythonTask:
    def __init__(self, name: str, spec: InvocationSpec, *, requires_packages: bool = True) -> None:
        self.name = name
        self.spec = spec
        self.requires_packages = requires_packages

    def apply(self, ctx: Context) -> str:
        res = ctx.python.invoke(self.spec, cancel=ctx.cancel)
        if ctx.options.dry_run:
            return f"Would run {sh_join(res.args[1:])}."
        return f"Ran {sh_join(res.args[1:])}."


def _task_common(raw: dict[str, Any]) -> tuple[str, bool]:
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigurationError("task requires 'name'")
    requires_packages = raw.get("requires_packages", True)
    if not isinstance(requires_packages, bool):
        raise ConfigurationError("'requires_packages' must be a boolean if present")
    return name, requires_packages


def _python_available(ctx: Context) -> tuple[bool, str | None]:
    if ctx.runner.dry_run:
        return True, None
    if shutil.which(ctx.python.binary) is None:
        return False, f"`{ctx.python.binary}` not found"
    return True, None


@dataclass(frozen=True)
class PythonTaskPlugin:
    name: str = "builtin.python"

    def handlers(self) -> Sequence[TaskHandler]:
        return (TaskHandler(kind="python"),)

    def is_available(self, ctx: Context) -> tuple[bool, str | None]:
        return _python_available(ctx)

    def from_dict(self, raw: dict[str, Any], ctx: Context) -> Command:
        name, requires_packages = _task_common(raw)
        return PythonTask(name, invocation_from_dict(raw), requires_packages=requires_packages)


@dataclass(frozen=True)
class PipTaskPlugin:
    name: str = "builtin.pip"

    def handlers(self) -> Sequence[TaskHandler]:
        return (TaskHandler(kind="pip"),)

    def is_available(self, ctx: Context) -> tuple[bool, str | None]:
        return _python_available(ctx)

    def from_dict(self, raw: dict[str, Any], ctx: Context) -> Command:
        name, requires_packages = _task_common(raw)
        return PythonTask(name, invocation_from_dict(raw, module="pip"), requires_packages=requires_packages)


def builtin_plugins() -> list[TaskPlugin]:
    # Keep ordering stable for predictable behavior and logging.
    return [
        PythonTaskPlugin(),
        PipTaskPlugin(),
    ]
