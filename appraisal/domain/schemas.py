"""
Pydantic schemas for input validation across the appraisal service.

These schemas validate and sanitise everything an actor sends into a
workflow transition before any state is touched.
"""

from __future__ import annotations

import re
from html import unescape
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import GraderRole


class BaseValidationSchema(BaseModel):
    """Base schema with common validation utilities."""

    model_config = {"str_strip_whitespace": True, "validate_assignment": True}

    @field_validator("*", mode="before")
    def sanitize_strings(cls, v):
        """Strip markup and control characters from string inputs."""
        if isinstance(v, str):
            cleaned = unescape(v.strip())
            cleaned = re.sub(
                r"<\s*script[^>]*>.*?<\s*/\s*script\s*>",
                "",
                cleaned,
                flags=re.IGNORECASE | re.DOTALL,
            )
            cleaned = re.sub(r"<[^>]+>", "", cleaned)
            cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]", "", cleaned)
            return cleaned
        return v


class ResponseInput(BaseValidationSchema):
    """One grader's score and comment for one question."""

    question_id: int = Field(..., gt=0)
    score: float | None = Field(None, ge=0)
    comment: str | None = None

    @field_validator("comment")
    def empty_comment_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value


class ResponseBatchInput(BaseValidationSchema):
    responses: list[ResponseInput] = Field(default_factory=list)

    @field_validator("responses")
    def unique_questions(cls, value: list[ResponseInput]) -> list[ResponseInput]:
        seen: set[int] = set()
        for item in value:
            if item.question_id in seen:
                raise ValueError(f"Duplicate response for question {item.question_id}")
            seen.add(item.question_id)
        return value


class SaveResponsesInput(ResponseBatchInput):
    actor: str = Field(..., min_length=1, max_length=32)
    role: GraderRole


class SubmitInput(ResponseBatchInput):
    actor: str = Field(..., min_length=1, max_length=32)


class ApproveInput(ResponseBatchInput):
    actor: str = Field(..., min_length=1, max_length=32)
    role: GraderRole
    note: str | None = None
    expected_version: int | None = Field(None, ge=1)

    @field_validator("role")
    def role_is_chain_slot(cls, value: GraderRole) -> GraderRole:
        if value is GraderRole.SELF:
            raise ValueError("The employee cannot approve their own assessment")
        return value

    @field_validator("note")
    def empty_note_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value


class RejectInput(BaseValidationSchema):
    actor: str = Field(..., min_length=1, max_length=32)
    role: GraderRole
    reason: str = Field(..., min_length=1)
    expected_version: int | None = Field(None, ge=1)

    @field_validator("role")
    def role_is_chain_slot(cls, value: GraderRole) -> GraderRole:
        if value is GraderRole.SELF:
            raise ValueError("The employee cannot reject their own assessment")
        return value

    @field_validator("reason")
    def reason_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("A rejection reason is required")
        return value


class AssessmentCreationInput(BaseValidationSchema):
    """Validation schema for creating an assessment (template or assigned)."""

    title: str = Field(..., min_length=1, max_length=255)
    target_level: str = Field(..., min_length=1, max_length=64)
    employee_id: str | None = Field(None, max_length=32)
    period: str | None = Field(None, max_length=64)

    @field_validator("employee_id", "period")
    def blank_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


class EmployeeInput(BaseValidationSchema):
    """Directory record as loaded by the seeder."""

    emp_code: str = Field(..., min_length=1, max_length=32)
    name: str = Field(..., min_length=1, max_length=255)
    email: str | None = Field(None, max_length=255)
    level: str | None = Field(None, max_length=64)
    department: str | None = Field(None, max_length=255)
    approver1_code: str | None = Field(None, max_length=32)
    approver2_code: str | None = Field(None, max_length=32)
    approver3_code: str | None = Field(None, max_length=32)
    manager_code: str | None = Field(None, max_length=32)
    gm_code: str | None = Field(None, max_length=32)
    warning_count: int = Field(0, ge=0)

    @model_validator(mode="after")
    def not_own_approver(self):
        chain = [
            self.approver1_code,
            self.approver2_code,
            self.approver3_code,
            self.manager_code,
            self.gm_code,
        ]
        if self.emp_code in chain:
            raise ValueError("An employee cannot appear in their own approval chain")
        return self


class QuestionInput(BaseValidationSchema):
    """Catalog question as loaded by the seeder."""

    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = Field(None)
    category: str | None = Field(None, max_length=64)
    weight: float = Field(..., ge=0, le=100)
    max_score: int = Field(5, ge=1)
    applicable_level: str = Field(..., min_length=1, max_length=64)
    order: int = Field(0, ge=0)
    is_active: bool = True


class ValidationErrorDetail(BaseModel):
    """Schema for validation error details."""

    field: str
    message: str
    value: Any = None


class ValidationResponse(BaseModel):
    """Schema for validation responses."""

    success: bool
    errors: list[ValidationErrorDetail] = []
    data: dict[str, Any] | None = None


def validate_input(schema_class: type[BaseModel], data: dict[str, Any]) -> ValidationResponse:
    """
    Centralized validation function that returns structured validation results.

    Example:
        >>> result = validate_input(RejectInput, {"actor": "X", "role": "appr1", "reason": ""})
        >>> result.success
        False
    """
    try:
        validated = schema_class(**data)
        return ValidationResponse(success=True, data=validated.model_dump())
    except Exception as e:
        errors = []
        if hasattr(e, "errors"):  # Pydantic validation errors
            for error in e.errors():
                errors.append(
                    ValidationErrorDetail(
                        field=".".join(str(x) for x in error["loc"]) or "general",
                        message=error["msg"],
                        value=error.get("input"),
                    )
                )
        else:
            errors.append(ValidationErrorDetail(field="general", message=str(e)))

        return ValidationResponse(success=False, errors=errors)
