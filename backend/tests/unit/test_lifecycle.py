"""Unit tests for the analysis lifecycle and the in-memory store rules."""

from __future__ import annotations

import pytest

from app.modules.analysis.lifecycle import (
    AnalysisStatus,
    InvalidTransitionError,
    can_transition,
    transition,
)
from app.modules.analysis.schemas import AnalysisNotFoundError, AnalysisRecord
from app.modules.analysis.store import InMemoryAnalysisStore

S = AnalysisStatus


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (S.pending, S.running),
        (S.pending, S.completed),
        (S.running, S.completed),
        (S.running, S.failed),
    ],
)
def test_allowed_transitions(current: AnalysisStatus, target: AnalysisStatus) -> None:
    """Every allowed status move succeeds."""
    assert can_transition(current, target)
    assert transition(current, target) is target


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (S.completed, S.running),
        (S.completed, S.failed),
        (S.failed, S.completed),
        (S.failed, S.running),
        (S.running, S.pending),
        (S.running, S.running),
        (S.pending, S.failed),
    ],
)
def test_rejected_transitions(current: AnalysisStatus, target: AnalysisStatus) -> None:
    """Moves outside the table → InvalidTransitionError."""
    with pytest.raises(InvalidTransitionError):
        transition(current, target)


def test_transition_accepts_raw_strings() -> None:
    """transition() accepts plain status strings."""
    assert transition("running", "completed") is S.completed


def test_terminal_states() -> None:
    """Completed and Failed are terminal, Running is not."""
    assert S.completed.is_terminal
    assert S.failed.is_terminal
    assert not S.running.is_terminal


# ---------------------------------------------------------------------------
# Store enforcement
# ---------------------------------------------------------------------------


async def test_store_moves_running_record_to_completed() -> None:
    """Running → Completed stores the price and keeps updated_at moving forward."""
    store = InMemoryAnalysisStore()
    record = await store.create_record(AnalysisRecord(company_id="c1", status=S.running))

    updated = await store.update_record(
        record.id, status=S.completed, recommended_price="$9,000/month", confidence_score=82
    )

    assert updated.status is S.completed
    assert updated.recommended_price == "$9,000/month"
    assert updated.updated_at >= record.updated_at
    assert (await store.get_record(record.id)) == updated


async def test_terminal_record_is_immutable() -> None:
    """A Completed record rejects any further update."""
    store = InMemoryAnalysisStore()
    record = await store.create_record(AnalysisRecord(company_id="c1", status=S.completed))

    with pytest.raises(InvalidTransitionError):
        await store.update_record(record.id, status=S.failed)
    with pytest.raises(InvalidTransitionError):
        await store.update_record(record.id, result={"error": "late"})
    assert (await store.get_record(record.id)) == record


async def test_record_cannot_be_born_failed() -> None:
    """Creating a record directly in Failed is rejected."""
    store = InMemoryAnalysisStore()
    with pytest.raises(InvalidTransitionError):
        await store.create_record(AnalysisRecord(company_id="c1", status=S.failed))


async def test_identity_fields_are_not_updatable() -> None:
    """company_id cannot be changed after creation."""
    store = InMemoryAnalysisStore()
    record = await store.create_record(AnalysisRecord(company_id="c1", status=S.running))
    with pytest.raises(ValueError, match="company_id"):
        await store.update_record(record.id, company_id="c2")


async def test_update_unknown_record() -> None:
    """Updating an unknown id → AnalysisNotFoundError."""
    with pytest.raises(AnalysisNotFoundError):
        await InMemoryAnalysisStore().update_record("missing", status=S.completed)


async def test_history_is_newest_first_and_limited() -> None:
    """History is per user, newest first and limited."""
    store = InMemoryAnalysisStore()
    ids = []
    for _ in range(4):
        record = await store.create_record(
            AnalysisRecord(company_id="c1", user_id="u1", status=S.running)
        )
        ids.append(record.id)
    await store.create_record(AnalysisRecord(company_id="c1", user_id="u2", status=S.running))

    history = await store.list_records_by_user("u1", limit=3)
    assert [r.id for r in history] == ids[::-1][:3]


async def test_company_lookup_is_case_insensitive() -> None:
    """Company lookup by name ignores case."""
    store = InMemoryAnalysisStore()
    company = await store.create_company(name="Acme")
    assert await store.find_company_by_name("ACME") == company
    assert await store.find_company_by_name("Globex") is None
