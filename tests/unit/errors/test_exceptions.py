"""Tests for the tasksync exception hierarchy."""

from tasksync.errors import (
    ActionError,
    FrameError,
    StreamError,
    StreamUnavailableError,
    TasksyncError,
)


def test_hierarchy():
    assert issubclass(StreamUnavailableError, StreamError)
    assert issubclass(FrameError, StreamError)
    assert issubclass(StreamError, TasksyncError)
    assert issubclass(ActionError, TasksyncError)


def test_to_dict():
    error = StreamUnavailableError(
        message="Stream endpoint returned HTTP 404",
        error_code="STREAM-HttpStatus",
        details={"status_code": 404},
    )

    assert error.to_dict() == {
        "message": "Stream endpoint returned HTTP 404",
        "error_code": "STREAM-HttpStatus",
        "details": {"status_code": 404},
    }
    assert str(error) == "Stream endpoint returned HTTP 404"


def test_details_default_to_empty_dict():
    assert ActionError("failed").details == {}
