"""Tests for RequestValidator.

Covers:
- Confirmation phrase must match exactly
- Reason required and length-limited
- One active request per subject
- Cooldown since the most recent historical request, rounded up to whole days
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from erasure_service.config import ErasureSettings
from erasure_service.deletion.catalog import build_step_catalog
from erasure_service.deletion.store import DeletionRequestStore
from erasure_service.deletion.validator import RequestValidator
from erasure_service.errors import ConflictError, ValidationError
from erasure_service.models.enums import DeletionRequestStatus
from erasure_service.scheduling.ticker import ManualClock
from erasure_service.schemas.deletion import DeletionRequest, DeletionRequestData, RequestMetadata

PHRASE = "DELETE_MY_ACCOUNT"


# ── Helpers ──────────────────────────────────────────────────────────


def _make_validator(**overrides):
    clock = ManualClock()
    store = DeletionRequestStore()
    validator = RequestValidator(ErasureSettings(**overrides), store, clock)
    return validator, store, clock


def _add_request(store, clock, request_id="del_1", subject_id="user-1", terminal=None):
    now = clock.now()
    store.create(DeletionRequest(
        request_id=request_id,
        subject_id=subject_id,
        reason="r",
        requested_at=now,
        requested_by=subject_id,
        steps=[d.instantiate() for d in build_step_catalog(ErasureSettings())],
        metadata=RequestMetadata(estimated_completion_time=now, deadline=now + timedelta(days=30)),
    ))
    if terminal is not None:
        store.get_live(request_id).status = terminal
        store.move_to_history(request_id)


def _data(confirmation=PHRASE, reason="closing account"):
    return DeletionRequestData(confirmation=confirmation, reason=reason)


# ── Field checks ─────────────────────────────────────────────────────


class TestFieldChecks:
    def test_valid(self):
        validator, _, _ = _make_validator()
        validator.validate("user-1", _data())

    def test_lowercase_confirmation_rejected(self):
        validator, store, _ = _make_validator()
        with pytest.raises(ValidationError, match="DELETE_MY_ACCOUNT"):
            validator.validate("user-1", _data(confirmation="delete_my_account"))
        assert store.active_count == 0

    def test_missing_confirmation_rejected(self):
        validator, _, _ = _make_validator()
        with pytest.raises(ValidationError):
            validator.validate("user-1", _data(confirmation=None))

    def test_confirmation_not_required_when_disabled(self):
        validator, _, _ = _make_validator(enable_deletion_confirmation=False)
        validator.validate("user-1", _data(confirmation=None))

    def test_blank_subject_rejected(self):
        validator, _, _ = _make_validator()
        with pytest.raises(ValidationError, match="subject"):
            validator.validate("   ", _data())

    def test_missing_reason_rejected(self):
        validator, _, _ = _make_validator()
        with pytest.raises(ValidationError, match="reason"):
            validator.validate("user-1", _data(reason=""))

    def test_reason_at_limit_accepted(self):
        validator, _, _ = _make_validator()
        validator.validate("user-1", _data(reason="x" * 500))

    def test_reason_over_limit_rejected(self):
        validator, _, _ = _make_validator()
        with pytest.raises(ValidationError, match="500"):
            validator.validate("user-1", _data(reason="x" * 501))

    def test_reason_optional_when_disabled(self):
        validator, _, _ = _make_validator(require_deletion_reason=False)
        validator.validate("user-1", _data(reason=None))


# ── Conflicts ────────────────────────────────────────────────────────


class TestConflicts:
    def test_active_request_conflicts(self):
        validator, store, clock = _make_validator()
        _add_request(store, clock)
        with pytest.raises(ConflictError) as exc_info:
            validator.validate("user-1", _data())
        assert exc_info.value.existing_request_id == "del_1"

    def test_other_subject_not_affected(self):
        validator, store, clock = _make_validator()
        _add_request(store, clock)
        validator.validate("user-2", _data())

    def test_cooldown_remaining_days_rounded_up(self):
        validator, store, clock = _make_validator()
        _add_request(store, clock, terminal=DeletionRequestStatus.COMPLETED)
        clock._now += timedelta(days=2, hours=12)

        with pytest.raises(ConflictError) as exc_info:
            validator.validate("user-1", _data())

        # 4.5 days left -> 5
        assert exc_info.value.remaining_days == 5
        assert exc_info.value.existing_request_id == "del_1"
        assert "5 days" in str(exc_info.value)

    def test_cooldown_counts_cancelled_requests(self):
        validator, store, clock = _make_validator()
        _add_request(store, clock, terminal=DeletionRequestStatus.CANCELLED)
        with pytest.raises(ConflictError):
            validator.validate("user-1", _data())

    def test_cooldown_expired(self):
        validator, store, clock = _make_validator()
        _add_request(store, clock, terminal=DeletionRequestStatus.FAILED)
        clock._now += timedelta(days=7)
        validator.validate("user-1", _data())

    def test_cooldown_disabled(self):
        validator, store, clock = _make_validator(enable_cooldown_period=False)
        _add_request(store, clock, terminal=DeletionRequestStatus.COMPLETED)
        validator.validate("user-1", _data())
