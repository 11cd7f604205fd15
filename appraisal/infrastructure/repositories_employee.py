# appraisal/infrastructure/repositories_employee.py
from __future__ import annotations

from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.models import Employee
from .exceptions import EmployeeNotFoundError, ValidationError
from .logging import log_database_operation as log_op
from .models import EmployeeORM
from .repositories_base import BaseRepository


def to_domain_employee(row: EmployeeORM) -> Employee:
    return Employee(
        emp_code=row.emp_code,
        approver1=row.approver1_code,
        approver2=row.approver2_code,
        approver3=row.approver3_code,
        manager=row.manager_code,
        gm=row.gm_code,
        warning_count=row.warning_count,
        name=row.name,
        email=row.email,
    )


class EmployeeRepo(BaseRepository[EmployeeORM]):
    """
    Read access to the employee directory.

    The directory is reference data owned elsewhere; apart from the seeder's
    upsert, the workflow only reads it.
    """

    model = EmployeeORM
    resource_name = "Employee"

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("get_employee")
    def get_required(self, emp_code: str) -> EmployeeORM:
        if not emp_code or not emp_code.strip():
            raise ValidationError("emp_code", "Employee code must not be empty")
        try:
            row = self.s.get(EmployeeORM, emp_code.strip())
        except SQLAlchemyError as e:
            self._handle_error(e, "get_employee")
        if row is None:
            raise EmployeeNotFoundError(emp_code)
        return row

    @log_op("get_employee_chain")
    def get_chain(self, emp_code: str) -> Employee:
        """Current approval chain and warning count, read fresh on every call."""
        return to_domain_employee(self.get_required(emp_code))

    @log_op("upsert_employee")
    def upsert(self, emp_code: str, **fields: Any) -> EmployeeORM:
        try:
            row = self.s.get(EmployeeORM, emp_code)
            if row is None:
                row = EmployeeORM(emp_code=emp_code)
                self.s.add(row)
            for key, value in fields.items():
                setattr(row, key, value)
            self.s.flush()
            return row
        except SQLAlchemyError as e:
            self._handle_error(e, "upsert_employee")
