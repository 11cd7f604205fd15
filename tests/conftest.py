from __future__ import annotations

import os

os.environ.setdefault("APP_ENVIRONMENT", "testing")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from appraisal.domain.models import NotificationKind  # noqa: E402
from appraisal.infrastructure.db import make_engine_and_session  # noqa: E402
from appraisal.infrastructure.models import Base, EmployeeORM, QuestionORM  # noqa: E402


class RecordingEmitter:
    """Collects delivered events; raises for any target listed in ``fail_for``."""

    def __init__(self, fail_for: tuple[str, ...] = ()):
        self.sent: list[tuple[str, NotificationKind, int]] = []
        self.fail_for = set(fail_for)

    def notify(self, target_emp_code: str, kind: NotificationKind, assessment_id: int) -> None:
        if target_emp_code in self.fail_for:
            raise RuntimeError(f"mailbox of {target_emp_code} is unavailable")
        self.sent.append((target_emp_code, NotificationKind(kind), assessment_id))


def seed_directory(session: Session) -> None:
    session.add_all(
        [
            # E1: sparse chain X1 / - / - / M1 / G1, one warning on record
            EmployeeORM(
                emp_code="E1",
                name="Erin",
                level="Staff",
                approver1_code="X1",
                approver3_code="-",
                manager_code="M1",
                gm_code="G1",
                warning_count=1,
            ),
            # E2: nobody in the chain
            EmployeeORM(emp_code="E2", name="Eli", level="Staff"),
            # E3: two approvers only
            EmployeeORM(
                emp_code="E3",
                name="Esme",
                level="Staff",
                approver1_code="X1",
                approver2_code="X2",
            ),
            EmployeeORM(emp_code="X1", name="Xavi", level="Lead"),
            EmployeeORM(emp_code="X2", name="Xena", level="Lead"),
            EmployeeORM(emp_code="M1", name="Mara", level="Manager"),
            EmployeeORM(emp_code="W1", name="Wes", level="Manager"),
            EmployeeORM(emp_code="G1", name="Gus", level="GM"),
        ]
    )


def seed_catalog(session: Session) -> dict[str, int]:
    delivery = QuestionORM(title="Delivery", weight=60, applicable_level="Staff", order=1)
    teamwork = QuestionORM(title="Teamwork", weight=40, applicable_level="All", order=2)
    leadership = QuestionORM(title="Leadership", weight=100, applicable_level="Manager", order=1)
    session.add_all([delivery, teamwork, leadership])
    session.flush()
    return {"delivery": delivery.id, "teamwork": teamwork.id, "leadership": leadership.id}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def SessionLocal(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def questions(SessionLocal) -> dict[str, int]:
    """Seeds the directory and catalog; returns question ids by short name."""
    with SessionLocal() as s:
        seed_directory(s)
        ids = seed_catalog(s)
        s.commit()
    return ids


@pytest.fixture
def file_db(tmp_path) -> tuple[sessionmaker, dict[str, int]]:
    """
    Seeded file-backed database, so two sessions use separate connections
    the way two concurrent requests would.
    """
    engine, factory = make_engine_and_session(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(engine)
    with factory() as s:
        seed_directory(s)
        ids = seed_catalog(s)
        s.commit()
    yield factory, ids
    engine.dispose()


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture
def emitter_class() -> type[RecordingEmitter]:
    return RecordingEmitter
