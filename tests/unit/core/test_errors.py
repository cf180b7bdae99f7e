"""Tests for meetgrid/errors.py and the MutationStatus enum."""

import pytest

from meetgrid.errors import (
    MeetgridError,
    NetworkError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    classify_error,
)
from meetgrid.sync import MutationStatus


class TestTaxonomy:
    def test_to_dict(self):
        error = NotFoundError("Meeting (x) does not exist", meeting_id="x")
        assert error.to_dict() == {
            "error": "NotFoundError",
            "message": "Meeting (x) does not exist",
            "details": {"meeting_id": "x"},
        }

    def test_to_dict_without_details(self):
        assert MeetgridError("boom").to_dict() == {"error": "MeetgridError", "message": "boom"}

    def test_recoverability(self):
        assert NetworkError("x").recoverable is True
        assert NotFoundError("x").recoverable is False

    def test_validation_error_is_value_error(self):
        assert issubclass(ValidationError, ValueError)
        assert not issubclass(ValidationError, PersistenceError)


class TestClassifyError:
    def test_store_errors_pass_through(self):
        error = NotFoundError("gone")
        assert classify_error(error) is error

    def test_unknown_errors_become_network_errors(self):
        classified = classify_error(TimeoutError("timed out"))
        assert isinstance(classified, NetworkError)
        assert classified.message == "timed out"
        assert classified.details == {"cause": "TimeoutError"}

    def test_empty_message_uses_type_name(self):
        assert classify_error(OSError()).message == "OSError"


class TestMutationStatus:
    def test_values(self):
        assert MutationStatus.values() == {"idle", "dirty", "committing", "error"}

    @pytest.mark.parametrize(
        "status,pending",
        [
            (MutationStatus.IDLE, False),
            (MutationStatus.DIRTY, True),
            (MutationStatus.COMMITTING, True),
            (MutationStatus.ERROR, False),
        ],
    )
    def test_is_pending(self, status, pending):
        assert status.is_pending is pending

    def test_string_compatible(self):
        assert MutationStatus.ERROR == "error"
