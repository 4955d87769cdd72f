"""
Task plugin discovery.

Plugins come from three places, in this order:
  - the built-in `python` and `pip` kinds
  - installed distributions exposing a `use_python.plugins` entry point
  - `*.py` files in plugin directories (`--plugins-dir`, USE_PYTHON_PLUGINS_DIRS,
    `$XDG_CONFIG_HOME/use-python/plugins`); files starting with "_" are skipped

A plugin file defines PLUGIN, or a get_plugin() returning one. An entry point
refers to either of those objects directly.
"""

from __future__ import annotations

import os
import runpy
from dataclasses import dataclass, field
from importlib import metadata
from pathlib import Path
from typing import Any, Iterator, Sequence

from use_python.plugins.api import TaskPlugin
from use_python.plugins.builtin import builtin_plugins
from use_python.util import xdg_config_home

ENTRY_POINT_GROUP = "use_python.plugins"
PLUGINS_DIRS_ENV = "USE_PYTHON_PLUGINS_DIRS"

_REQUIRED_METHODS = ("handlers", "is_available", "from_dict")


@dataclass(frozen=True)
class PluginLoadResult:
    plugins: list[TaskPlugin]
    errors: list[str] = field(default_factory=list)


def _as_plugin(obj: Any, *, origin: str) -> TaskPlugin:
    # get_plugin() factories and plugin classes are called once
    if callable(obj) and not hasattr(obj, "handlers"):
        obj = obj()
    elif isinstance(obj, type):
        obj = obj()
    name = getattr(obj, "name", None)
    if not isinstance(name, str) or not name:
        raise ValueError(f"{origin}: task plugin must have a non-empty 'name'")
    missing = [m for m in _REQUIRED_METHODS if not callable(getattr(obj, m, None))]
    if missing:
        raise ValueError(f"{origin}: task plugin {name!r} is missing {', '.join(missing)}()")
    return obj


def _from_file(py_file: Path) -> TaskPlugin:
    namespace = runpy.run_path(str(py_file), run_name=f"use_python_plugin_{py_file.stem}")
    obj = namespace.get("PLUGIN")
    if obj is None:
        obj = namespace.get("get_plugin")
    if obj is None:
        raise ValueError(f"{py_file}: plugin file must define PLUGIN or get_plugin()")
    return _as_plugin(obj, origin=str(py_file))


def _entry_point_plugins(errors: list[str]) -> Iterator[TaskPlugin]:
    for ep in metadata.entry_points(group=ENTRY_POINT_GROUP):
        try:
            yield _as_plugin(ep.load(), origin=f"entry point {ep.name} ({ep.value})")
        except Exception as e:
            errors.append(f"Failed to load plugin entry point {ep.name}: {e}")


def plugin_dirs_from_env() -> list[Path]:
    value = os.environ.get(PLUGINS_DIRS_ENV, "")
    return [Path(p.strip()) for p in value.split(os.pathsep) if p.strip()]


def _search_dirs(explicit: Sequence[Path]) -> list[Path]:
    dirs = [*explicit, *plugin_dirs_from_env()]
    user_dir = xdg_config_home() / "use-python" / "plugins"
    if user_dir.is_dir():
        dirs.append(user_dir)
    unique: list[Path] = []
    for d in dirs:
        d = d.expanduser().resolve()
        if d not in unique:
            unique.append(d)
    return unique


def _dir_plugins(dirs: Sequence[Path], errors: list[str]) -> Iterator[TaskPlugin]:
    for d in dirs:
        if not d.is_dir():
            errors.append(f"Plugins dir does not exist or is not a directory: {d}")
            continue
        for py_file in sorted(p for p in d.glob("*.py") if not p.name.startswith("_")):
            try:
                yield _from_file(py_file)
            except Exception as e:
                errors.append(f"Failed to load plugin {py_file}: {e}")


def load_plugins(
    *,
    include_builtin: bool = True,
    include_entry_points: bool = True,
    plugin_dirs: Sequence[Path] | None = None,
) -> PluginLoadResult:
    """
    Collect task plugins. Load failures never abort: they are returned as messages
    so the CLI can warn and carry on with the plugins that did load. A plugin whose
    name is already taken is reported and skipped.
    """
    errors: list[str] = []
    sources: list[TaskPlugin] = list(builtin_plugins()) if include_builtin else []
    if include_entry_points:
        sources.extend(_entry_point_plugins(errors))
    sources.extend(_dir_plugins(_search_dirs(plugin_dirs or []), errors))

    plugins: list[TaskPlugin] = []
    names: set[str] = set()
    for plugin in sources:
        if plugin.name in names:
            errors.append(f"Duplicate task plugin name {plugin.name!r}; keeping the first one")
            continue
        names.add(plugin.name)
        plugins.append(plugin)
    return PluginLoadResult(plugins=plugins, errors=errors)
