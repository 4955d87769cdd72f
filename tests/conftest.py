import json
import logging
import sys
from pathlib import Path

import pytest

from use_python.core import Options, build_context
from use_python.errors import ExecutionError
from use_python.invocation import build_args
from use_python.requirements import InstalledPackage
from use_python.util import ProcessResult


@pytest.fixture
def logger(caplog):
    caplog.set_level(logging.DEBUG, logger="use-python-test")
    return logging.getLogger("use-python-test")


@pytest.fixture
def ctx(tmp_path, logger):
    return build_context(
        project_dir=tmp_path,
        options=Options(dry_run=False),
        logger=logger,
        binary=sys.executable,
    )


class FakePython:
    """Stands in for use_python.core.Python; records argument vectors and simulates pip."""

    def __init__(self, logger, installed=(), fail_on=None):
        self.logger = logger
        self.installed = {p.name.lower(): p for p in installed}
        self.fail_on = fail_on
        self.calls = []

    @staticmethod
    def _subcommand(args):
        if len(args) < 3 or args[:2] != ["-m", "pip"]:
            return None
        # `pip list --format=json` is the installed-state query, plain `pip list` the visible listing
        if args[2] == "list" and "--format=json" in args:
            return "query"
        return args[2]

    def invoke(self, spec, *, capture=False, cancel=None):
        args = build_args(spec)
        self.calls.append(args)
        sub = self._subcommand(args)
        if sub is not None and sub == self.fail_on:
            raise ExecutionError(1, args=["python", *args], output_tail=["ERROR: boom"])
        stdout = ""
        if sub == "query":
            stdout = json.dumps([{"name": p.name, "version": p.version} for p in self.installed.values()])
        elif sub == "install":
            for token in args[3:]:
                if token.startswith("-"):
                    break
                name, _, version = token.partition("==")
                if name.lower() in self.installed and self.installed[name.lower()].version == version:
                    self.logger.log(spec.log_level.value, "%sRequirement already satisfied: %s", spec.output_prefix, token)
                self.installed[name.lower()] = InstalledPackage(name=name, version=version or "1.0")
        return ProcessResult(args=["python", *args], returncode=0, stdout=stdout, captured=capture)

    def pip_calls(self, sub):
        return [c for c in self.calls if self._subcommand(c) == sub]


@pytest.fixture
def fake_python(logger):
    def make(installed=(), fail_on=None):
        return FakePython(logger, installed=installed, fail_on=fail_on)

    return make


@pytest.fixture
def repo_plugins_dir():
    return Path(__file__).resolve().parents[1] / "plugins"
