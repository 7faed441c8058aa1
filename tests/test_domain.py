from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.domain.models import JobStatusView
from app.db.session import _engine_options
from app.domain.retry import calculate_next_run, exhausted_reason
from app.domain.states import JobStatus, PROGRESS, TERMINAL_STATUSES, can_transition


NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize("status, progress", [
    (JobStatus.QUEUED, 10),
    (JobStatus.PROCESSING, 50),
    (JobStatus.COMPLETED, 100),
    (JobStatus.FAILED, 0),
    (JobStatus.CANCELLED, 0),
])
def test_progress_projection(status, progress):
    job = SimpleNamespace(status=status.value, result_url=None, last_error=None, attempts=2)
    view = JobStatusView.from_job(job)
    assert view.progress == progress == PROGRESS[status]
    assert view.status is status


def test_terminal_states_have_no_exits():
    for status in TERMINAL_STATUSES:
        for target in JobStatus:
            assert not can_transition(status, target)


def test_lifecycle_edges():
    assert can_transition("queued", "processing")
    assert can_transition("queued", "failed")
    assert can_transition("queued", "cancelled")
    assert can_transition("processing", "completed")
    assert can_transition("processing", "queued")
    assert can_transition("processing", "failed")
    assert not can_transition("processing", "cancelled")
    assert not can_transition("queued", "completed")


def test_zero_base_delay_requeues_immediately():
    assert calculate_next_run(3, base_delay_seconds=0, now=NOW) == NOW


def test_backoff_grows_and_caps():
    first = calculate_next_run(1, base_delay_seconds=10, jitter=False, now=NOW)
    second = calculate_next_run(2, base_delay_seconds=10, jitter=False, now=NOW)
    capped = calculate_next_run(30, base_delay_seconds=10, max_delay_seconds=60, jitter=False, now=NOW)

    assert first == NOW + timedelta(seconds=20)
    assert second == NOW + timedelta(seconds=40)
    assert capped == NOW + timedelta(seconds=60)


def test_jitter_stays_within_ten_percent():
    delayed = calculate_next_run(1, base_delay_seconds=10, now=NOW)
    assert NOW + timedelta(seconds=20) <= delayed <= NOW + timedelta(seconds=22)


def test_exhausted_reason_names_the_budget():
    assert exhausted_reason(3, 3) == "Retry budget exhausted after 3/3 attempts"


def test_sqlite_engine_skips_server_pool_options():
    assert _engine_options("sqlite+aiosqlite:///:memory:") == {}
    assert _engine_options("postgresql+asyncpg://db/docgen")["pool_pre_ping"] is True
