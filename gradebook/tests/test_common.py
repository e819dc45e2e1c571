"""
Tests for the shared infrastructure: errors, logging, identity and settings.
"""

import json
import logging

import jwt
import pytest
from pydantic import ValidationError as SettingsValidationError

from gradebook.common.auth import Principal, UserRole, principal_from_token
from gradebook.common.errors import (
    AttemptLimitExceeded,
    ErrorCode,
    GradebookError,
    NotAuthenticated,
    NotAuthorized,
    NotFoundError,
    StorageError,
    convert_exception,
    error_response,
    http_status_for,
)
from gradebook.common.logger import JsonFormatter, LoggerAdapter, app_logger, log_execution_time
from gradebook.config import Settings, settings


class TestErrors:
    def test_http_status_mapping(self):
        assert http_status_for(NotFoundError("Assessment", "a1")) == 404
        assert http_status_for(AttemptLimitExceeded("a1", "u1", 3)) == 409
        assert http_status_for(NotAuthenticated()) == 401
        assert http_status_for(StorageError("disk full")) == 503
        assert http_status_for(GradebookError("boom")) == 500

    def test_error_response_body(self):
        body = error_response(AttemptLimitExceeded("a1", "u1", 3))

        assert body["status"] == "error"
        assert body["code"] == "attempt_limit_exceeded"
        assert body["details"] == {"assessment_id": "a1", "user_id": "u1", "max_attempts": 3}
        assert "details" not in error_response(AttemptLimitExceeded("a1", "u1", 3), include_details=False)

    def test_convert_foreign_exception(self):
        converted = convert_exception(KeyError("question"), context={"attempt_id": "t1"})

        assert converted.code is ErrorCode.UNKNOWN_ERROR
        assert isinstance(converted.cause, KeyError)
        assert converted.context == {"attempt_id": "t1"}

        original = NotFoundError("Rubric", "r1")
        assert convert_exception(original) is original

    def test_to_dict_includes_cause(self):
        error = StorageError("commit failed", cause=RuntimeError("locked"))

        data = error.to_dict()
        assert data["code"] == "storage_error"
        assert data["exception_type"] == "StorageError"
        assert data["details"]["cause"] == {"type": "RuntimeError", "message": "locked"}
        assert "caused by RuntimeError" in str(error)


class TestLogging:
    def test_json_formatter_merges_context(self):
        logger = logging.getLogger("gradebook.tests.json")
        record = logger.makeRecord(
            logger.name, logging.INFO, __file__, 10, "Attempt %s started", ("t1",), None,
            extra={"data": {"attempt_id": "t1"}}
        )

        payload = json.loads(JsonFormatter().format(record))

        assert payload["message"] == "Attempt t1 started"
        assert payload["level"] == "INFO"
        assert payload["attempt_id"] == "t1"

    def test_adapter_context(self, caplog):
        adapter = LoggerAdapter(app_logger.getChild("tests"), {"user_id": "u1"}).with_context(attempt_id="t1")

        with caplog.at_level(logging.INFO, logger="gradebook.tests"):
            adapter.info("saved")

        record = caplog.records[-1]
        assert record.data == {"user_id": "u1", "attempt_id": "t1"}

    @pytest.mark.asyncio
    async def test_log_execution_time(self, caplog):
        logger = app_logger.getChild("tests.timing")

        @log_execution_time(logger)
        async def succeed():
            return 42

        @log_execution_time(logger)
        async def fail():
            raise NotFoundError("Assessment", "a1")

        with caplog.at_level(logging.DEBUG, logger="gradebook.tests.timing"):
            assert await succeed() == 42
            with pytest.raises(NotFoundError):
                await fail()

        messages = [r.getMessage() for r in caplog.records]
        assert any(m.startswith("succeed executed in") for m in messages)
        assert any(m.startswith("fail failed after") and "NotFoundError" in m for m in messages)


class TestIdentity:
    def test_roles_from_header(self):
        principal = principal_from_token("u1", "Instructor, unknown")

        assert principal.user_id == "u1"
        assert principal.roles == frozenset({UserRole.INSTRUCTOR})
        assert principal.can_author and principal.can_grade

    def test_default_role_is_student(self):
        principal = principal_from_token("u1")

        assert principal.roles == frozenset({UserRole.STUDENT})
        assert not principal.can_grade
        with pytest.raises(NotAuthorized):
            principal.require_grader("attempt:t1")

    def test_signed_tokens(self, monkeypatch):
        monkeypatch.setattr(settings, "JWT_SECRET", "test-secret")
        token = jwt.encode({"sub": "u7", "roles": ["grader"]}, "test-secret", algorithm="HS256")

        principal = principal_from_token(token)
        assert principal == Principal("u7", frozenset({UserRole.GRADER}))

        with pytest.raises(NotAuthenticated):
            principal_from_token(jwt.encode({"sub": "u7"}, "other-secret", algorithm="HS256"))
        with pytest.raises(NotAuthenticated):
            principal_from_token(jwt.encode({"roles": ["admin"]}, "test-secret", algorithm="HS256"))

    def test_owner_check(self):
        principal = Principal("u1")
        principal.require_owner("u1", "attempt:t1", "submit")
        with pytest.raises(NotAuthorized):
            principal.require_owner("u2", "attempt:t1", "submit")


class TestSettings:
    def test_defaults(self):
        defaults = Settings(_env_file=None)
        assert defaults.STORAGE_BACKEND in ("sql", "memory")
        assert defaults.API_PREFIX == "/api/v1"

    def test_validators(self):
        assert Settings(_env_file=None, LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"
        assert Settings(_env_file=None, STORAGE_BACKEND="MEMORY").STORAGE_BACKEND == "memory"
        for bad in ({"LOG_LEVEL": "chatty"}, {"STORAGE_BACKEND": "redis"}, {"ATTEMPT_START_RETRIES": -1}):
            with pytest.raises(SettingsValidationError):
                Settings(_env_file=None, **bad)
