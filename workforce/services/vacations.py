"""
Vacation Service - Vacaciones
Entitlement by seniority (Ley de Contrato de Trabajo, art. 150), balances and requests.
"""

from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from workforce.core.logging import get_logger
from workforce.core.timeutils import utcnow
from workforce.db import (
    Database,
    ReviewStatus,
    EmployeeRepository,
    VacationRepository,
    AuditLogRepository,
)

logger = get_logger(__name__)

WORKED_DAYS_PER_VACATION_DAY = 20


def _full_months(start: date, end: date) -> int:
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(0, months)


def entitlement_days(hire_date: Optional[date], year: int) -> int:
    """
    Vacation days for a year, by seniority at 31 December.

    Under 6 months: 1 day per 20 worked days (Monday to Friday).
    Under 5 years: 14, under 10: 21, under 20: 28, otherwise 35.
    """
    if hire_date is None:
        return 0

    reference = date(year, 12, 31)
    if hire_date > reference:
        return 0

    months = _full_months(hire_date, reference)
    if months < 6:
        worked = int(np.busday_count(hire_date, reference + timedelta(days=1)))
        return worked // WORKED_DAYS_PER_VACATION_DAY

    years = months // 12
    if years < 5:
        return 14
    if years < 10:
        return 21
    if years < 20:
        return 28
    return 35


def _request_to_dict(request) -> Dict[str, Any]:
    return {
        "id": request.id,
        "employee_id": request.employee_id,
        "start_date": request.start_date,
        "end_date": request.end_date,
        "days": request.days,
        "status": request.status.value,
        "reviewed_by": request.reviewed_by,
        "notes": request.notes,
    }


class VacationService:
    """
    Vacation management service.
    """

    def __init__(self, db: Database, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def balance(self, employee_id: int, year: int) -> Optional[Dict[str, int]]:
        """
        Entitlement, approved and pending days for a year.

        Available days exclude both approved and pending requests.
        """
        with self.db.session_scope() as session:
            employee = EmployeeRepository.get_by_id(session, employee_id)
            if not employee:
                return None

            entitled = entitlement_days(employee.hire_date, year)
            used = VacationRepository.sum_days(session, employee_id, year, ReviewStatus.APPROVED)
            pending = VacationRepository.sum_days(session, employee_id, year, ReviewStatus.PENDING)

            return {
                "year": year,
                "entitled": entitled,
                "used": used,
                "pending": pending,
                "available": entitled - used - pending,
            }

    def request(
        self,
        employee_id: int,
        start_date: date,
        end_date: date,
        actor: str,
        notes: Optional[str] = None,
    ) -> Tuple[bool, str, Optional[int]]:
        """
        Request vacation days (calendar days, both ends inclusive).

        Rejected when the range is reversed, spans two years, overlaps a
        pending or approved request, or exceeds the available balance.

        Returns:
            Tuple of (success, message, request_id)
        """
        if end_date < start_date:
            return False, "La fecha de fin es anterior a la de inicio", None
        if start_date.year != end_date.year:
            return False, "La solicitud no puede abarcar dos años", None

        days = (end_date - start_date).days + 1
        balance = self.balance(employee_id, start_date.year)
        if balance is None:
            return False, "Empleado no encontrado", None

        with self.db.session_scope() as session:
            overlapping = VacationRepository.find_overlapping(session, employee_id, start_date, end_date)
            if overlapping:
                other = overlapping[0]
                return False, (
                    f"Se superpone con otra solicitud del {other.start_date:%d/%m/%Y} "
                    f"al {other.end_date:%d/%m/%Y}"
                ), None

            if days > balance["available"]:
                return False, f"Días insuficientes: solicita {days}, disponibles {balance['available']}", None

            request = VacationRepository.create(session, employee_id, start_date, end_date, days, notes)
            AuditLogRepository.create(
                session,
                actor=actor,
                action="request_vacation",
                resource_type="vacation_request",
                resource_id=request.id,
                metadata={"days": days},
            )
            return True, f"Solicitud de {days} días registrada", request.id

    def _review(self, request_id: int, status: ReviewStatus, actor: str, notes: Optional[str]) -> Tuple[bool, str]:
        with self.db.session_scope() as session:
            request = VacationRepository.get_by_id(session, request_id)
            if request is None:
                return False, "Solicitud no encontrada"
            if request.status != ReviewStatus.PENDING:
                return False, "La solicitud ya fue revisada"

            request.status = status
            request.reviewed_by = actor
            if notes:
                request.notes = notes

            AuditLogRepository.create(
                session,
                actor=actor,
                action="approve_vacation" if status == ReviewStatus.APPROVED else "reject_vacation",
                resource_type="vacation_request",
                resource_id=request_id,
            )
            return True, "Solicitud aprobada" if status == ReviewStatus.APPROVED else "Solicitud rechazada"

    def approve(self, request_id: int, actor: str, notes: Optional[str] = None) -> Tuple[bool, str]:
        return self._review(request_id, ReviewStatus.APPROVED, actor, notes)

    def reject(self, request_id: int, actor: str, notes: Optional[str] = None) -> Tuple[bool, str]:
        return self._review(request_id, ReviewStatus.REJECTED, actor, notes)

    def list_requests(self, employee_id: int) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            return [_request_to_dict(r) for r in VacationRepository.list_by_employee(session, employee_id)]
