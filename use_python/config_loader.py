from __future__ import annotations

import json
from dataclasses import dataclass, field
from json import JSONDecodeError
from pathlib import Path
from typing import Any

from use_python.errors import ConfigurationError
from use_python.invocation import LogLevel
from use_python.reconcile import PipOptions, ReconcileOptions
from use_python.requirements import Requirement, parse_requirements
from use_python.util import env_value


@dataclass(frozen=True)
class PythonConfig:
    binary: str | None = None
    path: str | None = None
    requirements: list[Requirement] = field(default_factory=list)
    always_install_modules: bool = False
    show_installed_versions: bool = True
    log_level: LogLevel = LogLevel.LIFECYCLE
    environment: dict[str, str] = field(default_factory=dict)
    pip: PipOptions = field(default_factory=PipOptions)

    def reconcile_options(self) -> ReconcileOptions:
        return ReconcileOptions(
            always_install_modules=self.always_install_modules,
            show_installed_versions=self.show_installed_versions,
            log_level=self.log_level,
            pip=self.pip,
        )


@dataclass(frozen=True)
class LoadedConfig:
    path: Path
    version: int | None
    description: str | None
    python: PythonConfig
    tasks: list[dict[str, Any]]

    @property
    def project_dir(self) -> Path:
        return self.path.parent


def _require_int(value: Any, *, what: str) -> int:
    if not isinstance(value, int):
        raise ConfigurationError(f"'{what}' must be an integer if present")
    return value


def _optional_str(value: Any, *, what: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"'{what}' must be a non-empty string if present")
    return value


def _optional_bool(value: Any, *, what: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigurationError(f"'{what}' must be a boolean if present")
    return value


def _str_list(value: Any, *, what: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(x, str) for x in value):
        return tuple(value)
    raise ConfigurationError(f"'{what}' must be a string or a list of strings")


def _str_map(value: Any, *, what: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{what}' must be a table")
    out: dict[str, str] = {}
    for k, v in value.items():
        if isinstance(v, (dict, list)) or v is None:
            raise ConfigurationError(f"'{what}.{k}' must be a scalar value")
        out[str(k)] = env_value(v)
    return out


def _parse_pip_options(raw: Any) -> PipOptions:
    if raw is None:
        return PipOptions()
    if not isinstance(raw, dict):
        raise ConfigurationError("'python.pip_options' must be a table")
    unknown = set(raw) - {"index_url", "extra_index_urls", "trusted_hosts", "user_scope", "break_system_packages"}
    if unknown:
        raise ConfigurationError(f"Unknown pip option(s): {', '.join(sorted(unknown))}")
    return PipOptions(
        index_url=_optional_str(raw.get("index_url"), what="pip_options.index_url"),
        extra_index_urls=_str_list(raw.get("extra_index_urls"), what="pip_options.extra_index_urls"),
        trusted_hosts=_str_list(raw.get("trusted_hosts"), what="pip_options.trusted_hosts"),
        user_scope=_optional_bool(raw.get("user_scope"), what="pip_options.user_scope", default=False),
        break_system_packages=_optional_bool(
            raw.get("break_system_packages"), what="pip_options.break_system_packages", default=False
        ),
    )


def _parse_python(raw: Any) -> PythonConfig:
    if raw is None:
        return PythonConfig()
    if not isinstance(raw, dict):
        raise ConfigurationError("'python' must be a table")

    pip = raw.get("pip", raw.get("modules"))
    if pip is None:
        pip = []
    if isinstance(pip, (str, dict)):
        pip = [pip]
    if not isinstance(pip, list):
        raise ConfigurationError("'python.pip' must be a list of requirements")

    log_level = raw.get("log_level")
    return PythonConfig(
        binary=_optional_str(raw.get("binary"), what="python.binary"),
        path=_optional_str(raw.get("path"), what="python.path"),
        requirements=parse_requirements(pip),
        always_install_modules=_optional_bool(
            raw.get("always_install_modules"), what="python.always_install_modules", default=False
        ),
        show_installed_versions=_optional_bool(
            raw.get("show_installed_versions"), what="python.show_installed_versions", default=True
        ),
        log_level=LogLevel.parse(log_level) if log_level is not None else LogLevel.LIFECYCLE,
        environment=_str_map(raw.get("environment"), what="python.environment"),
        pip=_parse_pip_options(raw.get("pip_options")),
    )


def _parse_tasks(raw: Any) -> list[dict[str, Any]]:
    if raw is None:
        return []
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        raise ConfigurationError("'task' must be a table or array-of-tables")
    seen: set[str] = set()
    out: list[dict[str, Any]] = []
    for i, t in enumerate(raw, start=1):
        if not isinstance(t, dict):
            raise ConfigurationError(f"[[task]] entry {i} must be a table")
        name = t.get("name")
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"[[task]] entry {i} requires 'name'")
        if name in seen:
            raise ConfigurationError(f"Duplicate task name: {name}")
        seen.add(name)
        out.append(dict(t))
    return out


def _normalize_top_level(obj: Any) -> tuple[int | None, str | None, PythonConfig, list[dict[str, Any]]]:
    if not isinstance(obj, dict):
        raise ConfigurationError("Config must be a table with optional 'python' and 'task' sections.")
    version = obj.get("version")
    description = obj.get("description")
    if version is not None:
        _require_int(version, what="version")
    if description is not None and not isinstance(description, str):
        raise ConfigurationError("'description' must be a string if present")

    if "task" in obj and "tasks" in obj:
        raise ConfigurationError("Use either 'task' or 'tasks', not both")
    extra_keys = set(obj.keys()) - {"version", "description", "python", "task", "tasks"}
    if extra_keys:
        raise ConfigurationError(f"Unknown top-level key(s): {', '.join(sorted(extra_keys))}")

    python = _parse_python(obj.get("python"))
    tasks = _parse_tasks(obj.get("task", obj.get("tasks")))
    return version, description, python, tasks


def _load_json(text: str, path: Path) -> Any:
    try:
        return json.loads(text)
    except JSONDecodeError as e:
        raise ConfigurationError(
            f"Invalid JSON in {path} at line {e.lineno}, column {e.colno}: {e.msg}"
        ) from e


def _load_toml(text: str, path: Path) -> Any:
    # TOML parsing is in stdlib as of Python 3.11. On older Pythons, use tomli.
    try:
        import tomllib  # type: ignore
    except ImportError:  # pragma: no cover
        import tomli as tomllib  # type: ignore
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def _load_yaml(text: str, path: Path) -> Any:
    import yaml

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        if mark is not None and hasattr(mark, "line") and hasattr(mark, "column"):
            line = int(mark.line) + 1
            col = int(mark.column) + 1
            raise ConfigurationError(f"Invalid YAML in {path} at line {line}, column {col}: {e}") from e
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e


def load_config_file(path: Path) -> LoadedConfig:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()

    if suffix == ".json":
        raw = _load_json(text, path)
    elif suffix == ".toml":
        raw = _load_toml(text, path)
    elif suffix in (".yaml", ".yml"):
        raw = _load_yaml(text, path)
    else:
        raise ConfigurationError(
            f"Unsupported config format for {path} (expected .json, .toml, .yaml, .yml)."
        )
    try:
        version, description, python, tasks = _normalize_top_level(raw)
    except ConfigurationError as e:
        raise ConfigurationError(f"{path}: {e}") from e
    return LoadedConfig(
        path=path.resolve(),
        version=version,
        description=description,
        python=python,
        tasks=tasks,
    )
