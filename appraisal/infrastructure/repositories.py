"""
Data access layer for the appraisal service.

Each entity repository lives in its own module; this module re-exports
them so callers can write::

    from appraisal.infrastructure.repositories import AssessmentRepo, ResponseRepo
"""

from __future__ import annotations

from .repositories_assessment import AssessmentRepo  # re-export
from .repositories_base import BaseRepository  # re-export
from .repositories_employee import EmployeeRepo, to_domain_employee  # re-export
from .repositories_notification import NotificationRepo  # re-export
from .repositories_question import QuestionRepo, to_domain_question  # re-export
from .repositories_response import ResponseRepo, to_domain_response  # re-export

# Tell linters/formatters these imports are intentional (exported API)
__all__ = [
    "AssessmentRepo",
    "BaseRepository",
    "EmployeeRepo",
    "NotificationRepo",
    "QuestionRepo",
    "ResponseRepo",
    "to_domain_employee",
    "to_domain_question",
    "to_domain_response",
]
