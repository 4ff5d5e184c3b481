from __future__ import annotations

from typing import Any, Dict, List

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from versioned_state.errors import (
    BackwardMigrationError,
    DuplicateMigrationError,
    MigrationStepError,
    MissingMigrationError,
)
from versioned_state.migrations import MigrationRegistry, run_migrations
from versioned_state.models import Migration


class _Recorder:
    def __init__(self) -> None:
        self.calls: List[int] = []

    def step(self, version: int, field: str):
        def transform(data: Dict[str, Any]) -> Dict[str, Any]:
            self.calls.append(version)
            out = dict(data)
            out[field] = version
            out["trail"] = list(data.get("trail", [])) + [version]
            return out

        return Migration(version=version, description=f"set {field}", transform=transform)


def test_same_version_is_identity_without_calls():
    rec = _Recorder()
    state = {"a": 1}
    out = run_migrations(state, 2, 2, [rec.step(1, "x"), rec.step(2, "y")])
    assert out is state
    assert rec.calls == []


@settings(max_examples=50, deadline=None)
@given(
    version=st.integers(min_value=0, max_value=50),
    versions=st.lists(st.integers(min_value=1, max_value=60), unique=True, max_size=10),
)
def test_identity_for_any_version_and_migrations(version, versions):
    rec = _Recorder()
    state = object()
    migs = [rec.step(v, "f") for v in versions]
    assert run_migrations(state, version, version, migs) is state
    assert rec.calls == []


def test_backward_fails_without_calls():
    rec = _Recorder()
    with pytest.raises(BackwardMigrationError) as ei:
        run_migrations({}, 3, 1, [rec.step(v, "f") for v in (1, 2, 3)])
    assert ei.value.from_version == 3
    assert ei.value.to_version == 1
    assert rec.calls == []


def test_unsorted_input_matches_sorted_input():
    rec_a, rec_b = _Recorder(), _Recorder()
    unsorted = [rec_a.step(2, "b"), rec_a.step(3, "c"), rec_a.step(1, "a")]
    ordered = [rec_b.step(1, "a"), rec_b.step(2, "b"), rec_b.step(3, "c")]

    out_a = run_migrations({"v": 0}, 0, 3, unsorted)
    out_b = run_migrations({"v": 0}, 0, 3, ordered)

    assert out_a == out_b
    assert out_a["trail"] == [1, 2, 3]
    assert rec_a.calls == rec_b.calls == [1, 2, 3]


def test_only_versions_in_window_run():
    rec = _Recorder()
    migs = [rec.step(v, "f") for v in (1, 2, 3, 4, 5)]
    out = run_migrations({}, 2, 4, migs)
    assert rec.calls == [3, 4]
    assert out["trail"] == [3, 4]


def test_missing_version_named_and_nothing_runs():
    rec = _Recorder()
    with pytest.raises(MissingMigrationError) as ei:
        run_migrations({}, 1, 3, [rec.step(3, "c")])
    assert ei.value.missing == [2]
    assert "2" in str(ei.value)
    assert rec.calls == []


def test_all_missing_versions_reported():
    with pytest.raises(MissingMigrationError) as ei:
        run_migrations({}, 0, 5, [_Recorder().step(3, "c")])
    assert ei.value.missing == [1, 2, 4, 5]


def test_step_failure_aborts_with_context():
    rec = _Recorder()
    boom = RuntimeError("boom")

    def explode(_data):
        raise boom

    migs = [rec.step(1, "a"), Migration(2, "explode", explode), rec.step(3, "c")]
    with pytest.raises(MigrationStepError) as ei:
        run_migrations({}, 0, 3, migs)

    err = ei.value
    assert err.version == 2
    assert err.description == "explode"
    assert err.cause is boom
    assert err.__cause__ is boom
    assert rec.calls == [1]  # step 3 never ran


def test_each_step_receives_previous_output():
    seen: List[Any] = []

    def first(data):
        seen.append(data)
        return {"stage": 1}

    def second(data):
        seen.append(data)
        return {"stage": 2}

    out = run_migrations({"stage": 0}, 0, 2, [Migration(2, "b", second), Migration(1, "a", first)])
    assert seen == [{"stage": 0}, {"stage": 1}]
    assert out == {"stage": 2}


def test_duplicate_versions_rejected_before_running():
    rec = _Recorder()
    with pytest.raises(DuplicateMigrationError) as ei:
        run_migrations({}, 0, 2, [rec.step(1, "a"), rec.step(1, "b"), rec.step(2, "c")])
    assert ei.value.versions == [1]
    assert rec.calls == []


@pytest.mark.parametrize("bad", [0, -1, True, "2"])
def test_migration_version_must_be_positive_int(bad):
    with pytest.raises((TypeError, ValueError)):
        Migration(bad, "bad", lambda d: d)


# -------- Registry --------
def test_registry_decorator_and_ordering():
    registry = MigrationRegistry()

    @registry.register(3, "three")
    def three(data):
        return data

    @registry.register(2, "two")
    def two(data):
        return data

    assert registry.versions() == [2, 3]
    assert [m.description for m in registry] == ["two", "three"]
    assert registry.current_version() == 3
    assert 2 in registry and 4 not in registry
    assert len(registry) == 2
    # decorated functions are returned unchanged
    assert two({"a": 1}) == {"a": 1}


def test_registry_rejects_duplicates():
    registry = MigrationRegistry([Migration(2, "two", lambda d: d)])
    with pytest.raises(DuplicateMigrationError):
        registry.add(Migration(2, "again", lambda d: d))


def test_registry_empty_and_gaps():
    assert MigrationRegistry().current_version() == 1
    assert MigrationRegistry().missing_versions() == []
    registry = MigrationRegistry([Migration(v, str(v), lambda d: d) for v in (2, 4)])
    assert registry.missing_versions(from_version=1) == [3]
    assert registry.missing_versions() == [1, 3]


def test_registry_feeds_engine():
    registry = MigrationRegistry()

    @registry.register(1, "add email")
    def add_email(data):
        data["email"] = ""
        return data

    assert run_migrations({"name": "x"}, 0, 1, registry.migrations()) == {"name": "x", "email": ""}
