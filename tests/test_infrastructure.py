"""
Tests for the shared plumbing: validation schemas, error handling, logging,
configuration and repository error translation.
"""

import json
import logging
import os
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError as SQLIntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from appraisal.domain.schemas import (
    ApproveInput,
    EmployeeInput,
    QuestionInput,
    RejectInput,
    ResponseBatchInput,
    ResponseInput,
    validate_input,
)
from appraisal.infrastructure.config import (
    ApplicationConfig,
    DatabaseConfig,
    LoggingConfig,
    ScoringConfig,
    WorkflowConfig,
    get_settings,
    load_settings_from_file,
    override_settings,
    reset_settings,
)
from appraisal.infrastructure.exceptions import (
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    DatabaseError,
    IncompleteScoresError,
    IntegrityError,
    InvalidStateError,
    ValidationError,
    create_user_friendly_error_message,
    handle_database_error,
    log_error_details,
)
from appraisal.infrastructure.logging import (
    LogContext,
    StructuredFormatter,
    auto_configure_logging,
    clear_context,
    context_filter,
    get_logger,
    set_context,
    setup_logging,
)
from appraisal.infrastructure.db import make_engine_and_session
from appraisal.infrastructure.repositories import NotificationRepo


class TestPydanticValidation:
    """Input schemas used at the transition boundary."""

    def test_response_input_blank_comment_is_none(self):
        result = validate_input(ResponseInput, {"question_id": 1, "score": 4, "comment": "   "})
        assert result.success is True
        assert result.data["comment"] is None

    def test_response_input_rejects_negative_score(self):
        result = validate_input(ResponseInput, {"question_id": 1, "score": -1})
        assert result.success is False
        assert result.errors[0].field == "score"

    def test_duplicate_questions_in_batch(self):
        result = validate_input(
            ResponseBatchInput,
            {"responses": [{"question_id": 1, "score": 1}, {"question_id": 1, "score": 2}]},
        )
        assert result.success is False
        assert result.errors[0].field == "responses"

    def test_input_sanitization(self):
        result = validate_input(
            RejectInput,
            {
                "actor": "  X1 ",
                "role": "appr1",
                "reason": "<script>alert('xss')</script>Needs\x00 detail",
            },
        )
        assert result.success is True
        assert result.data["actor"] == "X1"
        assert result.data["reason"] == "Needs detail"

    def test_long_text_is_left_to_workflow_limits(self):
        result = validate_input(
            RejectInput, {"actor": "X1", "role": "appr1", "reason": "x" * 5000}
        )
        assert result.success is True
        assert len(result.data["reason"]) == 5000

    def test_reject_reason_required(self):
        result = validate_input(RejectInput, {"actor": "X1", "role": "appr1", "reason": " "})
        assert result.success is False
        assert any(error.field == "reason" for error in result.errors)

    def test_approve_input_refuses_self_role(self):
        result = validate_input(ApproveInput, {"actor": "E1", "role": "self"})
        assert result.success is False
        assert result.errors[0].field == "role"

    def test_employee_cannot_approve_themselves(self):
        result = validate_input(
            EmployeeInput, {"emp_code": "E1", "name": "Erin", "manager_code": "E1"}
        )
        assert result.success is False

    def test_question_weight_range(self):
        ok = validate_input(
            QuestionInput, {"title": "Delivery", "weight": 60, "applicable_level": "Staff"}
        )
        assert ok.success is True
        assert ok.data["max_score"] == 5
        too_heavy = validate_input(
            QuestionInput, {"title": "Delivery", "weight": 120, "applicable_level": "Staff"}
        )
        assert too_heavy.success is False


class TestErrorHandling:
    """Error hierarchy and conversion helpers."""

    def test_validation_error_properties(self):
        error = ValidationError("reason", "cannot be empty", "")
        assert error.field == "reason"
        assert error.code == "VALIDATION_FAILED"
        assert "cannot be empty" in str(error)
        assert error.to_dict()["message"] == "Invalid reason: cannot be empty"

    def test_error_hierarchy(self):
        assert issubclass(InvalidStateError, AuthorizationError)
        assert issubclass(IncompleteScoresError, ValidationError)
        error = IncompleteScoresError("appr1", [3, 4])
        assert error.code == "SCORES_INCOMPLETE"
        assert error.details["missing_question_ids"] == [3, 4]

    def test_invalid_state_message_names_action(self):
        error = InvalidStateError("COMPLETED", "delete", "E1")
        assert error.code == "INVALID_STATE"
        assert "delete" in error.user_message
        assert error.details == {"status": "COMPLETED", "action": "delete", "actor": "E1"}

    def test_database_error_conversion(self):
        unique = SQLIntegrityError("stmt", {}, Exception("UNIQUE constraint failed"))
        converted = handle_database_error(unique, "insert")
        assert isinstance(converted, IntegrityError)
        assert "constraint" in converted.user_message.lower()

        stale = handle_database_error(StaleDataError("0 rows matched"), "flush")
        assert isinstance(stale, ConflictError)
        assert stale.code == "STALE_STATE"

    def test_user_friendly_messages(self):
        assert "reason" in create_user_friendly_error_message(ValidationError("reason", "empty"))
        assert "try again" in create_user_friendly_error_message(ValueError("boom")).lower()

    def test_log_error_details(self):
        details = log_error_details(ConflictError("stale", assessment_id=3), {"actor": "X1"})
        assert details["error_code"] == "STALE_STATE"
        assert details["context"] == {"actor": "X1"}


class TestLogging:
    """Structured logging and context propagation."""

    def test_logger_is_namespaced(self):
        assert get_logger("test_module").name == "appraisal.test_module"
        assert get_logger("appraisal.domain").name == "appraisal.domain"

    def test_file_logging(self, tmp_path):
        log_file = tmp_path / "appraisal.log"
        try:
            setup_logging(
                LoggingConfig(level="DEBUG", file_path=str(log_file), console_enabled=False)
            )
            get_logger("test").info("written to file")
            for handler in logging.getLogger("appraisal").handlers:
                handler.flush()
            line = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
            assert line["message"] == "written to file"
            assert line["logger"] == "appraisal.test"
        finally:
            auto_configure_logging()

    def test_context_is_added_to_structured_records(self):
        record = logging.LogRecord("appraisal.t", logging.INFO, __file__, 1, "moved", None, None)
        set_context(assessment_id=12, actor="X1")
        try:
            context_filter.filter(record)
        finally:
            clear_context()
        entry = json.loads(StructuredFormatter().format(record))
        assert entry["assessment_id"] == 12
        assert entry["actor"] == "X1"

    def test_log_context_restores_previous_values(self):
        clear_context()
        set_context(actor="E1")
        try:
            with LogContext(actor="X1", role="appr1"):
                assert context_filter.context == {"actor": "X1", "role": "appr1"}
            assert context_filter.context == {"actor": "E1"}
        finally:
            clear_context()


class TestConfiguration:
    """Settings sections and their validation."""

    def test_sqlite_url(self, tmp_path):
        config = DatabaseConfig(backend="sqlite", sqlite_path=str(tmp_path / "appraisal"))
        assert config.get_connection_url() == f"sqlite:///{tmp_path / 'appraisal.db'}"

    def test_mysql_url(self):
        config = DatabaseConfig(
            backend="mysql",
            mysql_host="db",
            mysql_user="hr",
            mysql_password="secret",
            mysql_database="appraisal",
        )
        url = config.get_connection_url()
        assert url.startswith("mysql+pymysql://hr:secret@db:3306/appraisal")

    def test_mysql_requires_database(self):
        with pytest.raises(ValueError):
            DatabaseConfig(backend="mysql", mysql_database="")

    def test_rank_thresholds_must_descend(self):
        assert ScoringConfig().rank_thresholds()[0] == ("S", 4.5)
        with pytest.raises(ValueError):
            ScoringConfig(rank_a=4.6)

    def test_testing_environment_logging_profile(self, monkeypatch):
        for name in ("LOG_LEVEL", "LOG_FILE_PATH", "LOG_CONSOLE_ENABLED"):
            monkeypatch.delenv(name, raising=False)
        config = LoggingConfig().for_environment("testing")
        assert config.level == "WARNING"
        assert config.file_path is None
        assert config.console_enabled is False

    def test_explicit_log_level_beats_environment_profile(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert LoggingConfig().for_environment("testing").level == "ERROR"
        assert LoggingConfig().for_environment("development", debug=True).level == "ERROR"

    def test_debug_forces_debug_level(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        assert LoggingConfig().for_environment("production", debug=True).level == "DEBUG"

    def test_unusable_database_url(self):
        with pytest.raises(ConfigurationError) as excinfo:
            make_engine_and_session("not a url")
        assert excinfo.value.config_key == "database"

    def test_debug_not_allowed_in_production(self):
        with pytest.raises(ValueError):
            ApplicationConfig(environment="production", debug=True)

    def test_workflow_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("WORKFLOW_REVIEWERS_MUST_SCORE", "true")
        monkeypatch.setenv("WORKFLOW_EMPTY_SLOT_MARKERS", '["", "-", "N/A"]')
        config = WorkflowConfig()
        assert config.reviewers_must_score is True
        assert "N/A" in config.empty_slot_markers

    def test_settings_override(self):
        try:
            settings = override_settings(scoring_warning_penalty=1)
            assert settings.scoring.warning_penalty == 1.0
            assert settings is get_settings()
        finally:
            os.environ.pop("SCORING_WARNING_PENALTY", None)
            reset_settings()

    def test_load_settings_from_json(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"scoring": {"rank_s": 4.8}}), encoding="utf-8")
        try:
            settings = load_settings_from_file(str(path))
            assert settings.scoring.rank_s == 4.8
        finally:
            os.environ.pop("SCORING_RANK_S", None)
            reset_settings()

    def test_unsupported_settings_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("scoring: {}", encoding="utf-8")
        with pytest.raises(ValueError):
            load_settings_from_file(str(path))


class TestRepositoryErrors:
    """Persistence failures surface as application errors."""

    def test_driver_failure_becomes_database_error(self, SessionLocal):
        with SessionLocal() as s:
            repo = NotificationRepo(s)
            failure = OperationalError("INSERT", {}, Exception("disk I/O error"))
            with patch.object(s, "add", side_effect=failure), pytest.raises(DatabaseError):
                repo.add("X1", "Approved", "Done", "Finished", 1)
