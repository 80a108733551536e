"""
Tests for the Draft | Committed invoice state variant.
"""

from datetime import datetime, timezone

import pytest

from invoice_kernel.domain.invoice_state import (
    Committed,
    Draft,
    require_committed,
    require_draft,
    state_from_columns,
)
from invoice_kernel.exceptions import AlreadyCommittedError, InvalidStateError

COMMITTED_AT = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestStateFromColumns:
    def test_no_commit_time_is_draft(self):
        assert state_from_columns(None, None) == Draft()

    def test_commit_time_and_number_is_committed(self):
        state = state_from_columns(7, COMMITTED_AT)
        assert state == Committed(number=7, committed_at=COMMITTED_AT)

    def test_committed_without_number_is_corrupt(self):
        with pytest.raises(ValueError):
            state_from_columns(None, COMMITTED_AT)


class TestNarrowing:
    def test_require_draft_passes_draft(self):
        assert isinstance(require_draft(Draft(), "inv-1"), Draft)

    def test_require_draft_rejects_committed(self):
        with pytest.raises(AlreadyCommittedError) as exc_info:
            require_draft(Committed(3, COMMITTED_AT), "inv-1")
        assert exc_info.value.invoice_id == "inv-1"
        assert exc_info.value.number == 3
        assert exc_info.value.code == "ALREADY_COMMITTED"

    def test_require_committed_passes_committed(self):
        state = require_committed(Committed(1, COMMITTED_AT), "inv-1")
        assert state.number == 1

    def test_require_committed_rejects_draft(self):
        with pytest.raises(InvalidStateError) as exc_info:
            require_committed(Draft(), "inv-1")
        assert exc_info.value.entity_type == "Invoice"
        assert exc_info.value.code == "INVALID_STATE"
