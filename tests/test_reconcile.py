import json

import pytest

from use_python.errors import ExecutionError
from use_python.reconcile import (
    PipOptions,
    Reason,
    ReconcileOptions,
    decide,
    install_batches,
    reconcile,
)
from use_python.requirements import InstalledPackage, parse_pip_list, parse_requirement, parse_requirements

QUIET_PASS = ReconcileOptions(show_installed_versions=False)


def test_decide_reasons():
    reqs = parse_requirements(["click:6.7", "requests", "six:1.16.0", "Foo_Bar"])
    installed = [InstalledPackage("click", "7.0"), InstalledPackage("six", "1.16.0"), InstalledPackage("foo-bar", "1")]
    decision = decide(reqs, installed)
    assert [r.name for r in decision.to_install] == ["click", "requests"]
    assert decision.reasons == {"click": Reason.VERSION_MISMATCH, "requests": Reason.MISSING}
    assert decision.reason is Reason.VERSION_MISMATCH


def test_decide_forced_ignores_installed_state():
    reqs = parse_requirements(["click:6.7", "six"])
    decision = decide(reqs, [InstalledPackage("click", "6.7")], always_install=True)
    assert len(decision.to_install) == 2
    assert set(decision.reasons.values()) == {Reason.FORCED}


def test_nothing_to_do_when_satisfied():
    decision = decide(parse_requirements(["click:6.7"]), [InstalledPackage("Click", "6.7")])
    assert not decision.changed
    assert decision.reason is None


def test_missing_requirement_is_installed(fake_python):
    python = fake_python()
    decision = reconcile(python, parse_requirements(["click:6.7"]), QUIET_PASS)
    assert decision.reasons == {"click": Reason.MISSING}
    assert python.pip_calls("install") == [["-m", "pip", "install", "click==6.7"]]


def test_second_pass_is_idempotent(fake_python):
    python = fake_python()
    reqs = parse_requirements(["click:6.7"])
    reconcile(python, reqs, QUIET_PASS)
    python.calls.clear()

    decision = reconcile(python, reqs, QUIET_PASS)
    assert not decision.changed
    assert python.pip_calls("install") == []
    assert python.pip_calls("list") == []


def test_satisfied_requirements_issue_no_install_and_no_listing(fake_python):
    python = fake_python(installed=[InstalledPackage("click", "6.7"), InstalledPackage("six", "1.16.0")])
    reconcile(python, parse_requirements(["click:6.7", "six"]), QUIET_PASS)
    assert python.pip_calls("install") == []
    assert python.pip_calls("list") == []
    assert python.calls == [["-m", "pip", "list", "--format=json", "--disable-pip-version-check"]]


def test_always_install_reinstalls_and_lists(fake_python, caplog):
    python = fake_python(installed=[InstalledPackage("click", "6.7")])
    reqs = parse_requirements(["click:6.7", "six:1.16.0"])
    decision = reconcile(python, reqs, ReconcileOptions(always_install_modules=True))
    assert python.pip_calls("query") == []
    assert python.pip_calls("install") == [["-m", "pip", "install", "click==6.7", "six==1.16.0"]]
    assert len(decision.to_install) == len(reqs)
    assert python.pip_calls("list") == [["-m", "pip", "list"]]
    assert any("Requirement already satisfied: click==6.7" in r.getMessage() for r in caplog.records)


def test_show_installed_versions_lists_even_without_changes(fake_python):
    python = fake_python(installed=[InstalledPackage("click", "6.7")])
    reconcile(python, parse_requirements(["click:6.7"]), ReconcileOptions())
    assert python.pip_calls("install") == []
    assert python.pip_calls("list") == [["-m", "pip", "list"]]


def test_no_requirements_spawns_nothing(fake_python):
    python = fake_python()
    reconcile(python, [], ReconcileOptions(always_install_modules=True))
    assert python.calls == []


def test_pip_options_and_index_flags(fake_python):
    python = fake_python()
    reqs = [
        parse_requirement("click:6.7"),
        parse_requirement({"name": "internal", "extra_index_flags": ["--extra-index-url", "https://pypi.example/simple"]}),
        parse_requirement("six"),
    ]
    options = ReconcileOptions(
        show_installed_versions=False,
        pip=PipOptions(trusted_hosts=("pypi.example",), user_scope=True),
    )
    reconcile(python, reqs, options)
    assert python.pip_calls("install") == [
        ["-m", "pip", "install", "click==6.7", "--trusted-host", "pypi.example", "--user"],
        [
            "-m", "pip", "install", "internal", "--trusted-host", "pypi.example", "--user",
            "--extra-index-url", "https://pypi.example/simple",
        ],
        ["-m", "pip", "install", "six", "--trusted-host", "pypi.example", "--user"],
    ]


def test_install_batches_keep_declaration_order():
    a, b, c = (parse_requirement(x) for x in ("a", "b", "c"))
    flagged = parse_requirement({"name": "d", "extra_index_flags": ["--pre"]})
    assert install_batches([a, b, flagged, c]) == [[a, b], [flagged], [c]]


def test_failed_install_propagates(fake_python):
    python = fake_python(fail_on="install")
    with pytest.raises(ExecutionError):
        reconcile(python, parse_requirements(["click:6.7"]), QUIET_PASS)
    assert "click" not in python.installed


def test_failed_probe_propagates(fake_python):
    python = fake_python(fail_on="query")
    with pytest.raises(ExecutionError):
        reconcile(python, parse_requirements(["click:6.7"]), QUIET_PASS)
    assert python.pip_calls("install") == []


def test_editable_entry_from_pip_list_satisfies_requirement():
    listed = parse_pip_list(
        json.dumps([{"name": "use-python", "version": "0.1.0", "editable_project_location": "/src/use-python"}])
    )
    decision = decide(parse_requirements(["use-python>=0.1"]), listed)
    assert decision.to_install == ()
