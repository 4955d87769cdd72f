import json

import pytest

from use_python.errors import ConfigurationError, UsePythonError
from use_python.requirements import (
    InstalledPackage,
    Requirement,
    parse_pip_list,
    parse_requirement,
    parse_requirements,
)


def test_colon_pin():
    req = parse_requirement("click:6.7")
    assert req.name == "click"
    assert req.version_constraint == "==6.7"
    assert req.pip_spec() == "click==6.7"


def test_pep508_range():
    req = parse_requirement("click>=6,<8")
    assert req.is_satisfied_by("7.1.2")
    assert not req.is_satisfied_by("8.1.0")


def test_colon_with_operator():
    assert parse_requirement("click:>=6").version_constraint == ">=6"


def test_extras_are_kept():
    req = parse_requirement("requests[socks]:2.31.0")
    assert req.extras == ("socks",)
    assert req.pip_spec() == "requests[socks]==2.31.0"


def test_no_constraint_matches_any_version():
    req = parse_requirement("click")
    assert req.version_constraint is None
    assert req.is_satisfied_by("0.1")
    assert req.is_satisfied_by("not-a-version")


def test_unparsable_installed_version_is_a_mismatch():
    assert not parse_requirement("click:6.7").is_satisfied_by("not-a-version")


def test_names_are_canonicalized():
    assert parse_requirement("Foo_Bar.baz").key == "foo-bar-baz"
    assert InstalledPackage("foo-bar_baz", "1").key == "foo-bar-baz"


def test_table_form():
    req = parse_requirement(
        {"name": "mypkg", "version": ">=1, <2", "extra_index_flags": ["--extra-index-url", "https://example/simple"]}
    )
    assert req == Requirement(
        name="mypkg",
        version_constraint="<2,>=1",
        extra_index_flags=("--extra-index-url", "https://example/simple"),
    )


@pytest.mark.parametrize(
    "raw",
    ["", "click:not a version", "click ; python_version < '3'", "pkg @ https://x/pkg.whl", 42, {"version": "1"}],
)
def test_invalid_requirements(raw):
    with pytest.raises(ConfigurationError):
        parse_requirement(raw)


def test_later_declaration_replaces_earlier_in_place():
    reqs = parse_requirements(["click:6.7", "requests", "Click:7.0"])
    assert [r.pip_spec() for r in reqs] == ["Click==7.0", "requests"]


def test_parse_pip_list_counts_editable_and_direct_installs():
    text = json.dumps(
        [
            {"name": "Click", "version": "6.7"},
            {"name": "use-python", "version": "0.1.0", "editable_project_location": "/src/use-python"},
            {"name": "local-pkg", "version": "2.0"},
        ]
    )
    assert parse_pip_list(text) == [
        InstalledPackage("Click", "6.7"),
        InstalledPackage("use-python", "0.1.0"),
        InstalledPackage("local-pkg", "2.0"),
    ]


def test_parse_pip_list_empty_output():
    assert parse_pip_list("") == []
    assert parse_pip_list("[]") == []


@pytest.mark.parametrize("text", ["Click==6.7", '{"name": "click"}', '[{"version": "1"}]'])
def test_parse_pip_list_rejects_unexpected_output(text):
    with pytest.raises(UsePythonError):
        parse_pip_list(text)
