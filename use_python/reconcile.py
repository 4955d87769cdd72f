"""
Keeps declared pip requirements installed in the target interpreter.

One pass: probe installed packages (`pip list --format=json`), decide what to install,
install it, then optionally show `pip list`.
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from use_python.core import Python
from use_python.invocation import InvocationSpec, LogLevel
from use_python.requirements import InstalledPackage, Requirement, index_by_key, parse_pip_list


class Reason(enum.Enum):
    MISSING = "missing"
    VERSION_MISMATCH = "version mismatch"
    FORCED = "forced"


@dataclass(frozen=True)
class PipOptions:
    index_url: str | None = None
    extra_index_urls: tuple[str, ...] = ()
    trusted_hosts: tuple[str, ...] = ()
    user_scope: bool = False
    break_system_packages: bool = False

    def install_flags(self) -> list[str]:
        flags: list[str] = []
        if self.index_url:
            flags += ["--index-url", self.index_url]
        for url in self.extra_index_urls:
            flags += ["--extra-index-url", url]
        for host in self.trusted_hosts:
            flags += ["--trusted-host", host]
        if self.user_scope:
            flags.append("--user")
        if self.break_system_packages:
            flags.append("--break-system-packages")
        return flags


@dataclass(frozen=True)
class ReconcileOptions:
    always_install_modules: bool = False
    show_installed_versions: bool = True
    log_level: LogLevel = LogLevel.LIFECYCLE
    output_prefix: str = "\t"
    pip: PipOptions = field(default_factory=PipOptions)


@dataclass(frozen=True)
class ReconciliationDecision:
    to_install: tuple[Requirement, ...] = ()
    reasons: Mapping[str, Reason] = field(default_factory=dict)

    @property
    def reason(self) -> Reason | None:
        if not self.to_install:
            return None
        return self.reasons[self.to_install[0].key]

    @property
    def changed(self) -> bool:
        return bool(self.to_install)


def decide(
    requirements: Sequence[Requirement],
    installed: Sequence[InstalledPackage],
    *,
    always_install: bool = False,
) -> ReconciliationDecision:
    """Pure decision step: which requirements need an install, and why."""
    present = index_by_key(installed)
    to_install: list[Requirement] = []
    reasons: dict[str, Reason] = {}
    for req in requirements:
        if always_install:
            reason = Reason.FORCED
        else:
            pkg = present.get(req.key)
            if pkg is None:
                reason = Reason.MISSING
            elif not req.is_satisfied_by(pkg.version):
                reason = Reason.VERSION_MISMATCH
            else:
                continue
        to_install.append(req)
        reasons[req.key] = reason
    return ReconciliationDecision(to_install=tuple(to_install), reasons=reasons)


def probe_installed(python: Python, *, cancel: threading.Event | None = None) -> list[InstalledPackage]:
    spec = InvocationSpec.create(
        module="pip",
        command=["list", "--format=json", "--disable-pip-version-check"],
        log_level=LogLevel.DEBUG,
    )
    res = python.invoke(spec, capture=True, cancel=cancel)
    return parse_pip_list(res.stdout)


def install_batches(requirements: Sequence[Requirement]) -> list[list[Requirement]]:
    """Group consecutive requirements sharing the same index flags; order is kept."""
    batches: list[list[Requirement]] = []
    for req in requirements:
        if batches and batches[-1][0].extra_index_flags == req.extra_index_flags:
            batches[-1].append(req)
        else:
            batches.append([req])
    return batches


def reconcile(
    python: Python,
    requirements: Sequence[Requirement],
    options: ReconcileOptions,
    *,
    cancel: threading.Event | None = None,
) -> ReconciliationDecision:
    logger = python.logger
    if not requirements:
        logger.debug("No pip requirements declared")
        return ReconciliationDecision()

    if options.always_install_modules:
        installed: list[InstalledPackage] = []
    else:
        installed = probe_installed(python, cancel=cancel)
    decision = decide(requirements, installed, always_install=options.always_install_modules)

    for req in decision.to_install:
        logger.debug("%s: %s", req.pip_spec(), decision.reasons[req.key].value)

    for batch in install_batches(decision.to_install):
        command = ["install", *(r.pip_spec() for r in batch)]
        command += options.pip.install_flags()
        command += list(batch[0].extra_index_flags)
        spec = InvocationSpec.create(
            module="pip",
            command=command,
            log_level=options.log_level,
            output_prefix=options.output_prefix,
        )
        python.invoke(spec, cancel=cancel)

    if options.show_installed_versions:
        spec = InvocationSpec.create(
            module="pip",
            command=["list"],
            log_level=options.log_level,
            output_prefix=options.output_prefix,
        )
        python.invoke(spec, cancel=cancel)

    if not decision.changed:
        logger.info("All pip requirements are already installed (%d).", len(requirements))
    return decision
