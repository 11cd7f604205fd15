"""
Database initialisation and directory/catalog seeding from Excel.

The workbook carries two sheets, ``Employees`` and ``Questions``, each with
a header row. Header matching ignores case, spaces and underscores, so both
``emp_code`` and ``EmpCode`` work, as do the ``approver1_ID`` style headers
of older directory exports.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd
from openpyxl import load_workbook
from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from appraisal.domain.schemas import EmployeeInput, QuestionInput, validate_input
from appraisal.infrastructure.exceptions import ValidationError
from appraisal.infrastructure.logging import get_logger, log_operation
from appraisal.infrastructure.models import Base
from appraisal.infrastructure.repositories import EmployeeRepo, QuestionRepo
from appraisal.infrastructure.uow import UnitOfWork

logger = get_logger(__name__)

EMPLOYEE_SHEET = "Employees"
QUESTION_SHEET = "Questions"

EMPLOYEE_COLUMNS: dict[str, str] = {
    "empcode": "emp_code",
    "name": "name",
    "email": "email",
    "level": "level",
    "department": "department",
    "approver1": "approver1_code",
    "approver1id": "approver1_code",
    "approver1code": "approver1_code",
    "approver2": "approver2_code",
    "approver2id": "approver2_code",
    "approver2code": "approver2_code",
    "approver3": "approver3_code",
    "approver3id": "approver3_code",
    "approver3code": "approver3_code",
    "manager": "manager_code",
    "managerid": "manager_code",
    "managercode": "manager_code",
    "gm": "gm_code",
    "gmid": "gm_code",
    "gmcode": "gm_code",
    "warningcount": "warning_count",
    "warnings": "warning_count",
}

QUESTION_COLUMNS: dict[str, str] = {
    "title": "title",
    "question": "title",
    "description": "description",
    "category": "category",
    "weight": "weight",
    "maxscore": "max_score",
    "applicablelevel": "applicable_level",
    "level": "applicable_level",
    "order": "order",
    "isactive": "is_active",
    "active": "is_active",
}


def initialise_database(engine: Engine) -> bool:
    """
    Ensure all ORM tables exist.

    Returns:
        True if every table already existed before this call, False if at least one table
        needed to be created.
    """
    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())
    expected_tables = [table.name for table in Base.metadata.sorted_tables]
    already_exists = all(table in existing_tables for table in expected_tables)
    Base.metadata.create_all(engine)
    return already_exists


def normalise_header(value: object) -> str:
    return re.sub(r"[^a-z0-9]", "", str(value).lower())


def clean_text(value: object) -> str:
    if isinstance(value, str):
        return value.strip()
    if value is None:
        return ""
    if pd.isna(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def clean_optional(value: object) -> str | None:
    text = clean_text(value)
    return text or None


def clean_bool(value: object, default: bool = True) -> bool:
    text = clean_text(value).lower()
    if not text:
        return default
    return text in {"1", "true", "yes", "y", "active"}


@dataclass(slots=True)
class SeedSummary:
    employees: int = 0
    questions: int = 0
    errors: list[str] = field(default_factory=list)


class ExcelSeedSource:
    """Sheets of a workbook loaded as DataFrames keyed by sheet title."""

    def __init__(self, sheets: dict[str, pd.DataFrame]):
        self._sheets = sheets
        self._by_lower = {name.lower(): df for name, df in sheets.items()}

    @classmethod
    def from_workbook(cls, excel_path: Path) -> ExcelSeedSource:
        workbook = load_workbook(excel_path, read_only=True, data_only=True)
        sheets: dict[str, pd.DataFrame] = {}
        try:
            for worksheet in workbook.worksheets:
                rows = [list(row) for row in worksheet.iter_rows(values_only=True)]
                if not rows:
                    continue
                headers = [
                    clean_text(cell) or f"Column{idx}" for idx, cell in enumerate(rows[0], start=1)
                ]
                body = [r for r in rows[1:] if any(clean_text(c) for c in r)]
                sheets[worksheet.title] = pd.DataFrame(body, columns=headers)
        finally:
            workbook.close()
        return cls(sheets)

    def sheet_names(self) -> list[str]:
        return sorted(self._sheets)

    def optional(self, name: str) -> pd.DataFrame | None:
        sheet = self._sheets.get(name)
        if sheet is None:
            sheet = self._by_lower.get(name.lower())
        return sheet

    def require(self, name: str) -> pd.DataFrame:
        sheet = self.optional(name)
        if sheet is None:
            available = ", ".join(self.sheet_names())
            raise KeyError(f"Sheet '{name}' not found in workbook. Available sheets: {available}")
        return sheet


def _rename(df: pd.DataFrame, aliases: dict[str, str]) -> pd.DataFrame:
    renamed = {}
    for column in df.columns:
        target = aliases.get(normalise_header(column))
        if target is not None and target not in renamed.values():
            renamed[column] = target
    return df.rename(columns=renamed)[list(renamed.values())]


def _row_errors(sheet: str, index: int, errors) -> list[str]:
    return [f"{sheet} row {index + 2}: {e.field}: {e.message}" for e in errors]


def seed_employees(session: Session, df: pd.DataFrame) -> tuple[int, list[str]]:
    df = _rename(df, EMPLOYEE_COLUMNS)
    if "emp_code" not in df.columns or "name" not in df.columns:
        raise ValidationError(EMPLOYEE_SHEET, "Sheet needs at least EmpCode and Name columns")

    repo = EmployeeRepo(session)
    count = 0
    errors: list[str] = []
    for index, row in df.iterrows():
        data: dict[str, object] = {k: clean_optional(row.get(k)) for k in df.columns}
        data["warning_count"] = data.get("warning_count") or 0
        result = validate_input(EmployeeInput, data)
        if not result.success:
            errors.extend(_row_errors(EMPLOYEE_SHEET, index, result.errors))
            continue
        fields = dict(result.data)
        emp_code = fields.pop("emp_code")
        repo.upsert(emp_code, **fields)
        count += 1
    return count, errors


def seed_questions(session: Session, df: pd.DataFrame) -> tuple[int, list[str]]:
    df = _rename(df, QUESTION_COLUMNS)
    required = {"title", "weight", "applicable_level"}
    if not required.issubset(df.columns):
        raise ValidationError(
            QUESTION_SHEET, "Sheet needs at least Title, Weight and ApplicableLevel columns"
        )

    repo = QuestionRepo(session)
    count = 0
    errors: list[str] = []
    for index, row in df.iterrows():
        data: dict[str, object] = {k: clean_optional(row.get(k)) for k in df.columns}
        data["is_active"] = clean_bool(row.get("is_active")) if "is_active" in df.columns else True
        for key in ("max_score", "order"):
            if data.get(key) is None:
                data.pop(key, None)
        result = validate_input(QuestionInput, data)
        if not result.success:
            errors.extend(_row_errors(QUESTION_SHEET, index, result.errors))
            continue
        fields = dict(result.data)
        repo.upsert_by_title(fields.pop("title"), fields.pop("applicable_level"), **fields)
        count += 1
    return count, errors


@log_operation("seed_from_excel")
def seed_from_excel(SessionLocal: sessionmaker, excel_path: Path) -> SeedSummary:
    """
    Upsert employees and questions from a workbook in one transaction.

    Rows that fail validation are skipped and reported in ``errors``; the
    rest are written.
    """
    source = ExcelSeedSource.from_workbook(Path(excel_path))
    summary = SeedSummary()
    with UnitOfWork(SessionLocal).begin() as s:
        employees = source.optional(EMPLOYEE_SHEET)
        if employees is not None:
            summary.employees, errors = seed_employees(s, employees)
            summary.errors.extend(errors)
        questions = source.optional(QUESTION_SHEET)
        if questions is not None:
            summary.questions, errors = seed_questions(s, questions)
            summary.errors.extend(errors)

    logger.info(
        f"Seeded {summary.employees} employee(s) and {summary.questions} question(s) "
        f"from {excel_path} ({len(summary.errors)} row(s) skipped)"
    )
    return summary
