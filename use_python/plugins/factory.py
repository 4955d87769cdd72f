from __future__ import annotations

from typing import Any, Iterable

from use_python.core import Command, Context
from use_python.errors import ConfigurationError, LaunchError
from use_python.plugins.api import TaskHandler, TaskPlugin

DEFAULT_KIND = "python"


class TaskFactory:
    """
    Registry-backed factory. Core code does not know about concrete task kinds.
    """

    def __init__(self, plugins: Iterable[TaskPlugin]) -> None:
        by_kind: dict[str, TaskPlugin] = {}
        for plugin in plugins:
            if not getattr(plugin, "name", None):
                raise ValueError("Plugin is missing required attribute 'name'")
            handlers = plugin.handlers()
            if not handlers:
                raise ValueError(f"Plugin {plugin.name} must handle at least one task kind")
            for h in handlers:
                if not isinstance(h, TaskHandler):
                    raise ValueError(f"Plugin {plugin.name} returned invalid handler: {h!r}")
                if not isinstance(h.kind, str) or not h.kind:
                    raise ValueError(f"Plugin {plugin.name} returned invalid kind: {h.kind!r}")
                if h.kind in by_kind:
                    other = by_kind[h.kind]
                    raise ValueError(f"Duplicate handler for task kind {h.kind}: {other.name} and {plugin.name}")
                by_kind[h.kind] = plugin
        self._by_kind = by_kind

    @property
    def registered_kinds(self) -> list[str]:
        return sorted(self._by_kind)

    def from_dict(self, raw: dict[str, Any], ctx: Context) -> Command:
        kind = raw.get("kind", DEFAULT_KIND)
        if not isinstance(kind, str) or not kind:
            raise ConfigurationError("'kind' must be a non-empty string if present")

        plugin = self._by_kind.get(kind)
        if plugin is None:
            known = ", ".join(self.registered_kinds) if self._by_kind else "(none)"
            raise ConfigurationError(f"Unknown task kind: {kind} (known: {known})")

        ok, reason = plugin.is_available(ctx)
        if not ok:
            msg = reason or "plugin is not available in this environment"
            raise LaunchError(f"Task kind {kind} is unavailable: {msg}", args=[ctx.python.binary])

        return plugin.from_dict(raw, ctx)
