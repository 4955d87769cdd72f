from __future__ import annotations

import json
import re
from dataclasses import dataclass
from json import JSONDecodeError
from typing import Any, Iterable, Sequence

from packaging.requirements import InvalidRequirement
from packaging.requirements import Requirement as Pep508Requirement
from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from use_python.errors import ConfigurationError, UsePythonError

# Gradle-style "name:version" declarations, e.g. "click:6.7".
_COLON_PIN_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*(?:\[[^\]]*\])?)\s*:\s*([^\s:]+)\s*$")


@dataclass(frozen=True)
class Requirement:
    name: str
    version_constraint: str | None = None
    extras: tuple[str, ...] = ()
    extra_index_flags: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return canonicalize_name(self.name)

    @property
    def specifier(self) -> SpecifierSet:
        return SpecifierSet(self.version_constraint or "")

    def pip_spec(self) -> str:
        """The requirement as passed to `pip install`."""
        name = self.name
        if self.extras:
            name += "[" + ",".join(self.extras) + "]"
        return name + (self.version_constraint or "")

    def is_satisfied_by(self, version: str) -> bool:
        if not self.version_constraint:
            return True
        try:
            return self.specifier.contains(Version(version), prereleases=True)
        except InvalidVersion:
            return False

    def __str__(self) -> str:
        return self.pip_spec()


@dataclass(frozen=True)
class InstalledPackage:
    name: str
    version: str

    @property
    def key(self) -> str:
        return canonicalize_name(self.name)


def _normalize_constraint(version: str) -> str:
    version = version.strip()
    if not version:
        return ""
    if version[0] in "=<>!~":
        spec = version
    else:
        spec = "==" + version
    try:
        SpecifierSet(spec)
    except InvalidSpecifier as e:
        raise ConfigurationError(f"Invalid version constraint {version!r}: {e}") from e
    return spec


def parse_requirement(raw: Any) -> Requirement:
    """
    Parse one declared requirement.

    Accepted forms:
      - "click:6.7"                  exact pin, gradle style
      - "click==6.7", "click>=6,<8"  PEP 508 (markers are rejected)
      - {"name": "click", "version": "6.7", "extra_index_flags": [...]}
    """
    flags: tuple[str, ...] = ()
    if isinstance(raw, dict):
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            raise ConfigurationError("requirement table requires 'name'")
        version = raw.get("version")
        if version is not None and not isinstance(version, str):
            raise ConfigurationError(f"'version' must be a string for requirement {name!r}")
        raw_flags = raw.get("extra_index_flags", [])
        if not isinstance(raw_flags, list) or not all(isinstance(x, str) for x in raw_flags):
            raise ConfigurationError(f"'extra_index_flags' must be a list of strings for requirement {name!r}")
        flags = tuple(raw_flags)
        text = name.strip() + (_normalize_constraint(version) if version else "")
        return _from_pep508(text, raw, flags)

    if not isinstance(raw, str) or not raw.strip():
        raise ConfigurationError(f"Requirement must be a non-empty string or table, got {raw!r}")

    m = _COLON_PIN_RE.match(raw)
    text = f"{m.group(1)}{_normalize_constraint(m.group(2))}" if m else raw.strip()
    return _from_pep508(text, raw, flags)


def _from_pep508(text: str, raw: Any, flags: tuple[str, ...]) -> Requirement:
    try:
        parsed = Pep508Requirement(text)
    except InvalidRequirement as e:
        raise ConfigurationError(f"Invalid requirement {raw!r}: {e}") from e
    if parsed.url:
        raise ConfigurationError(f"Direct url requirements are not supported: {raw!r}")
    if parsed.marker is not None:
        raise ConfigurationError(f"Environment markers are not supported: {raw!r}")
    return Requirement(
        name=parsed.name,
        version_constraint=str(parsed.specifier) or None,
        extras=tuple(sorted(parsed.extras)),
        extra_index_flags=flags,
    )


def parse_requirements(raws: Iterable[Any]) -> list[Requirement]:
    """Parse declarations in order; a repeated name replaces the earlier declaration in place."""
    by_key: dict[str, Requirement] = {}
    for raw in raws:
        req = parse_requirement(raw)
        by_key[req.key] = req
    return list(by_key.values())


def parse_pip_list(text: str) -> list[InstalledPackage]:
    """
    Parse `pip list --format=json` output into installed packages.

    Editable and direct-url installs are listed with their versions like any other
    distribution, so they count as installed.
    """
    if not text.strip():
        return []
    try:
        entries = json.loads(text)
    except JSONDecodeError as e:
        raise UsePythonError(f"Unexpected `pip list` output (line {e.lineno}, column {e.colno}): {e.msg}") from e
    if not isinstance(entries, list):
        raise UsePythonError("Unexpected `pip list` output: expected a JSON array")
    out: list[InstalledPackage] = []
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            raise UsePythonError(f"Unexpected `pip list` entry: {entry!r}")
        out.append(InstalledPackage(name=entry["name"], version=str(entry.get("version") or "")))
    return out


def index_by_key(packages: Sequence[InstalledPackage]) -> dict[str, InstalledPackage]:
    return {p.key: p for p in packages}
