"""
Database Repositories - Capa de acceso a datos
Provides repository pattern for database operations.
"""

import json
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List, Dict, Any, Sequence

from sqlalchemy.orm import Session
from sqlalchemy import select, update, func, and_, or_

from workforce.core.timeutils import utcnow
from .models import (
    Branch,
    Employee, EmployeeRole,
    User,
    PinCredential,
    AttendanceEvent, AttendanceType, AttendanceMethod,
    VerificationPhoto,
    FacialPhotoUpload, FaceDescriptor, ReviewStatus,
    PayrollConcept, ConceptKind,
    PayrollRun, PayrollReceipt,
    VacationRequest,
    Budget, Prize, PrizeType, PointsEntry, PrizeAssignment,
    AuditLog,
)


# =============================================================================
# Branch Repository
# =============================================================================

class BranchRepository:
    """Repository for Branch operations."""

    @staticmethod
    def create(session: Session, name: str) -> Branch:
        branch = Branch(name=name)
        session.add(branch)
        session.flush()
        return branch

    @staticmethod
    def get_by_id(session: Session, branch_id: int) -> Optional[Branch]:
        return session.get(Branch, branch_id)

    @staticmethod
    def get_by_name(session: Session, name: str) -> Optional[Branch]:
        stmt = select(Branch).where(Branch.name == name)
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def list_all(session: Session) -> List[Branch]:
        stmt = select(Branch).where(Branch.active == True).order_by(Branch.name)
        return list(session.execute(stmt).scalars().all())


# =============================================================================
# Employee Repository
# =============================================================================

class EmployeeRepository:
    """Repository for Employee operations."""

    @staticmethod
    def create(session: Session, **fields) -> Employee:
        """Create a new employee."""
        employee = Employee(**fields)
        session.add(employee)
        session.flush()
        return employee

    @staticmethod
    def get_by_id(session: Session, employee_id: int) -> Optional[Employee]:
        return session.get(Employee, employee_id)

    @staticmethod
    def get_by_legajo(session: Session, legajo: str) -> Optional[Employee]:
        stmt = select(Employee).where(Employee.legajo == legajo)
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def list_all(
        session: Session,
        active: Optional[bool] = None,
        branch_id: Optional[int] = None,
    ) -> List[Employee]:
        """List employees with optional filters, ordered by last name."""
        stmt = select(Employee)

        if active is not None:
            stmt = stmt.where(Employee.active == active)
        if branch_id is not None:
            stmt = stmt.where(Employee.branch_id == branch_id)

        stmt = stmt.order_by(Employee.last_name, Employee.first_name)
        return list(session.execute(stmt).scalars().all())

    @staticmethod
    def list_active(session: Session) -> List[Employee]:
        return EmployeeRepository.list_all(session, active=True)

    @staticmethod
    def list_payroll_eligible(session: Session) -> List[Employee]:
        """Active employees with a base salary configured."""
        stmt = (
            select(Employee)
            .where(and_(Employee.active == True, Employee.base_salary.is_not(None)))
            .order_by(Employee.last_name, Employee.first_name)
        )
        return list(session.execute(stmt).scalars().all())

    @staticmethod
    def search(session: Session, query: str, limit: int = 20) -> List[Employee]:
        """Search active employees by name or legajo."""
        pattern = f"%{query.strip()}%"
        stmt = (
            select(Employee)
            .where(Employee.active == True)
            .where(
                or_(
                    Employee.first_name.ilike(pattern),
                    Employee.last_name.ilike(pattern),
                    Employee.legajo.ilike(pattern),
                    (Employee.first_name + " " + Employee.last_name).ilike(pattern),
                )
            )
            .order_by(Employee.last_name, Employee.first_name)
            .limit(limit)
        )
        return list(session.execute(stmt).scalars().all())

    @staticmethod
    def update(session: Session, employee_id: int, **kwargs) -> bool:
        """Update employee fields."""
        stmt = update(Employee).where(Employee.id == employee_id).values(**kwargs)
        result = session.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    def reassign_branch(session: Session, employee_ids: Sequence[int], branch_id: Optional[int]) -> int:
        """Move several employees to a branch with one statement."""
        if not employee_ids:
            return 0
        stmt = (
            update(Employee)
            .where(Employee.id.in_(list(employee_ids)))
            .values(branch_id=branch_id, updated_at=utcnow())
        )
        result = session.execute(stmt)
        return result.rowcount

    @staticmethod
    def count_active(session: Session) -> int:
        stmt = select(func.count(Employee.id)).where(Employee.active == True)
        return session.execute(stmt).scalar() or 0


# =============================================================================
# User Repository
# =============================================================================

class UserRepository:
    """Repository for User operations."""

    @staticmethod
    def create(
        session: Session,
        username: str,
        password_hash: str,
        role: EmployeeRole = EmployeeRole.EMPLEADO,
        employee_id: Optional[int] = None,
    ) -> User:
        user = User(
            username=username,
            password_hash=password_hash,
            role=role,
            employee_id=employee_id,
        )
        session.add(user)
        session.flush()
        return user

    @staticmethod
    def get_by_id(session: Session, user_id: int) -> Optional[User]:
        return session.get(User, user_id)

    @staticmethod
    def get_by_username(session: Session, username: str) -> Optional[User]:
        stmt = select(User).where(User.username == username)
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def update_password(session: Session, user_id: int, password_hash: str) -> bool:
        stmt = update(User).where(User.id == user_id).values(password_hash=password_hash)
        result = session.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    def count(session: Session) -> int:
        stmt = select(func.count(User.id)).where(User.is_active == True)
        return session.execute(stmt).scalar() or 0


# =============================================================================
# PIN Repository
# =============================================================================

class PinRepository:
    """Repository for PinCredential operations."""

    @staticmethod
    def get_by_employee(session: Session, employee_id: int) -> Optional[PinCredential]:
        stmt = select(PinCredential).where(PinCredential.employee_id == employee_id)
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def upsert(session: Session, employee_id: int, pin_hash: str) -> PinCredential:
        """Set a PIN, clearing any failed attempts and lockout."""
        credential = PinRepository.get_by_employee(session, employee_id)
        if credential is None:
            credential = PinCredential(employee_id=employee_id, pin_hash=pin_hash)
            session.add(credential)
        else:
            credential.pin_hash = pin_hash
        credential.failed_attempts = 0
        credential.locked_until = None
        credential.active = True
        session.flush()
        return credential

    @staticmethod
    def active_employee_ids(session: Session) -> set:
        stmt = select(PinCredential.employee_id).where(PinCredential.active == True)
        return set(session.execute(stmt).scalars().all())

    @staticmethod
    def list_all(session: Session) -> List[PinCredential]:
        return list(session.execute(select(PinCredential)).scalars().all())


# =============================================================================
# Attendance Repository
# =============================================================================

class AttendanceRepository:
    """Repository for AttendanceEvent operations (append-only)."""

    @staticmethod
    def create(
        session: Session,
        employee_id: int,
        event_type: AttendanceType,
        method: AttendanceMethod,
        timestamp: datetime,
        confidence: Optional[float] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> AttendanceEvent:
        event = AttendanceEvent(
            employee_id=employee_id,
            event_type=event_type,
            method=method,
            timestamp=timestamp,
            confidence=confidence,
            latitude=latitude,
            longitude=longitude,
            notes=notes,
        )
        session.add(event)
        session.flush()
        return event

    @staticmethod
    def get_by_id(session: Session, event_id: int) -> Optional[AttendanceEvent]:
        return session.get(AttendanceEvent, event_id)

    @staticmethod
    def list_by_employee_range(
        session: Session,
        employee_id: int,
        start: datetime,
        end: datetime,
    ) -> List[AttendanceEvent]:
        """Events of one employee with start <= timestamp < end, oldest first."""
        stmt = (
            select(AttendanceEvent)
            .where(
                and_(
                    AttendanceEvent.employee_id == employee_id,
                    AttendanceEvent.timestamp >= start,
                    AttendanceEvent.timestamp < end,
                )
            )
            .order_by(AttendanceEvent.timestamp)
        )
        return list(session.execute(stmt).scalars().all())

    @staticmethod
    def list_range(session: Session, start: datetime, end: datetime) -> List[AttendanceEvent]:
        """Events of all employees in a range, most recent first."""
        stmt = (
            select(AttendanceEvent)
            .where(and_(AttendanceEvent.timestamp >= start, AttendanceEvent.timestamp < end))
            .order_by(AttendanceEvent.timestamp.desc())
        )
        return list(session.execute(stmt).scalars().all())

    @staticmethod
    def last_event_between(
        session: Session,
        employee_id: int,
        start: datetime,
        end: datetime,
    ) -> Optional[AttendanceEvent]:
        stmt = (
            select(AttendanceEvent)
            .where(
                and_(
                    AttendanceEvent.employee_id == employee_id,
                    AttendanceEvent.timestamp >= start,
                    AttendanceEvent.timestamp < end,
                )
            )
            .order_by(AttendanceEvent.timestamp.desc(), AttendanceEvent.id.desc())
            .limit(1)
        )
        return session.execute(stmt).scalars().first()


class VerificationPhotoRepository:
    """Repository for VerificationPhoto operations."""

    @staticmethod
    def upsert(
        session: Session,
        event_id: int,
        employee_id: int,
        storage_path: str,
        method: AttendanceMethod,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> VerificationPhoto:
        """One photo row per event; a new upload replaces the previous path."""
        stmt = select(VerificationPhoto).where(VerificationPhoto.event_id == event_id)
        photo = session.execute(stmt).scalar_one_or_none()
        if photo is None:
            photo = VerificationPhoto(event_id=event_id, employee_id=employee_id)
            session.add(photo)
        photo.storage_path = storage_path
        photo.method = method
        photo.latitude = latitude
        photo.longitude = longitude
        session.flush()
        return photo

    @staticmethod
    def get_by_event(session: Session, event_id: int) -> Optional[VerificationPhoto]:
        stmt = select(VerificationPhoto).where(VerificationPhoto.event_id == event_id)
        return session.execute(stmt).scalar_one_or_none()


# =============================================================================
# Facial Repository
# =============================================================================

class FacialRepository:
    """Repository for facial reference uploads and descriptors."""

    @staticmethod
    def create_upload(session: Session, employee_id: int, storage_path: str) -> FacialPhotoUpload:
        upload = FacialPhotoUpload(employee_id=employee_id, storage_path=storage_path)
        session.add(upload)
        session.flush()
        return upload

    @staticmethod
    def get_upload(session: Session, upload_id: int) -> Optional[FacialPhotoUpload]:
        return session.get(FacialPhotoUpload, upload_id)

    @staticmethod
    def list_uploads(session: Session, status: Optional[ReviewStatus] = None) -> List[FacialPhotoUpload]:
        stmt = select(FacialPhotoUpload)
        if status is not None:
            stmt = stmt.where(FacialPhotoUpload.status == status)
        stmt = stmt.order_by(FacialPhotoUpload.created_at.desc())
        return list(session.execute(stmt).scalars().all())

    @staticmethod
    def deactivate_descriptors(session: Session, employee_id: int) -> int:
        stmt = (
            update(FaceDescriptor)
            .where(and_(FaceDescriptor.employee_id == employee_id, FaceDescriptor.is_active == True))
            .values(is_active=False)
        )
        return session.execute(stmt).rowcount

    @staticmethod
    def add_descriptor(
        session: Session,
        employee_id: int,
        descriptor: Sequence[float],
        upload_id: Optional[int] = None,
    ) -> FaceDescriptor:
        row = FaceDescriptor(
            employee_id=employee_id,
            descriptor_json=json.dumps([float(v) for v in descriptor]),
            upload_id=upload_id,
        )
        session.add(row)
        session.flush()
        return row

    @staticmethod
    def list_active_descriptors(session: Session) -> List[FaceDescriptor]:
        stmt = (
            select(FaceDescriptor)
            .join(Employee, Employee.id == FaceDescriptor.employee_id)
            .where(and_(FaceDescriptor.is_active == True, Employee.active == True))
        )
        return list(session.execute(stmt).scalars().all())


# =============================================================================
# Payroll Repositories
# =============================================================================

class PayrollConceptRepository:
    """Repository for PayrollConcept operations."""

    @staticmethod
    def create(
        session: Session,
        code: str,
        description: str,
        kind: ConceptKind,
        formula: Optional[str] = None,
    ) -> PayrollConcept:
        concept = PayrollConcept(code=code, description=description, kind=kind, formula=formula)
        session.add(concept)
        session.flush()
        return concept

    @staticmethod
    def get_by_code(session: Session, code: str) -> Optional[PayrollConcept]:
        stmt = select(PayrollConcept).where(PayrollConcept.code == code)
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def list_all(session: Session, active_only: bool = True) -> List[PayrollConcept]:
        stmt = select(PayrollConcept)
        if active_only:
            stmt = stmt.where(PayrollConcept.active == True)
        stmt = stmt.order_by(PayrollConcept.code)
        return list(session.execute(stmt).scalars().all())


class PayrollRunRepository:
    """Repository for PayrollRun operations."""

    @staticmethod
    def create(session: Session, year: int, month: int, processed_by: str) -> PayrollRun:
        run = PayrollRun(year=year, month=month, processed_by=processed_by)
        session.add(run)
        session.flush()
        return run

    @staticmethod
    def get_by_id(session: Session, run_id: int) -> Optional[PayrollRun]:
        return session.get(PayrollRun, run_id)

    @staticmethod
    def get_by_period(session: Session, year: int, month: int) -> Optional[PayrollRun]:
        stmt = select(PayrollRun).where(and_(PayrollRun.year == year, PayrollRun.month == month))
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def list_all(session: Session, limit: int = 50) -> List[PayrollRun]:
        stmt = select(PayrollRun).order_by(PayrollRun.year.desc(), PayrollRun.month.desc()).limit(limit)
        return list(session.execute(stmt).scalars().all())

    @staticmethod
    def update_totals(
        session: Session,
        run_id: int,
        total_employees: int,
        total_gross: Decimal,
        total_deductions: Decimal,
        total_net: Decimal,
    ) -> bool:
        stmt = update(PayrollRun).where(PayrollRun.id == run_id).values(
            total_employees=total_employees,
            total_gross=total_gross,
            total_deductions=total_deductions,
            total_net=total_net,
        )
        result = session.execute(stmt)
        return result.rowcount > 0


class PayrollReceiptRepository:
    """Repository for PayrollReceipt operations."""

    @staticmethod
    def create_many(session: Session, receipts: List[Dict[str, Any]]) -> List[PayrollReceipt]:
        """Insert a batch of receipts in the current transaction."""
        rows = []
        for data in receipts:
            rows.append(PayrollReceipt(
                payroll_run_id=data["payroll_run_id"],
                employee_id=data["employee_id"],
                period=data["period"],
                earnings_json=json.dumps(data["earnings"]),
                deductions_json=json.dumps(data["deductions"]),
                total_earnings=data["total_earnings"],
                total_deductions=data["total_deductions"],
                net_pay=data["net_pay"],
            ))
        session.add_all(rows)
        session.flush()
        return rows

    @staticmethod
    def list_by_run(session: Session, run_id: int) -> List[PayrollReceipt]:
        stmt = (
            select(PayrollReceipt)
            .where(PayrollReceipt.payroll_run_id == run_id)
            .order_by(PayrollReceipt.employee_id)
        )
        return list(session.execute(stmt).scalars().all())

    @staticmethod
    def list_by_employee(session: Session, employee_id: int) -> List[PayrollReceipt]:
        stmt = (
            select(PayrollReceipt)
            .where(PayrollReceipt.employee_id == employee_id)
            .order_by(PayrollReceipt.period.desc())
        )
        return list(session.execute(stmt).scalars().all())


# =============================================================================
# Vacation Repository
# =============================================================================

class VacationRepository:
    """Repository for VacationRequest operations."""

    @staticmethod
    def create(
        session: Session,
        employee_id: int,
        start_date: date,
        end_date: date,
        days: int,
        notes: Optional[str] = None,
    ) -> VacationRequest:
        request = VacationRequest(
            employee_id=employee_id,
            start_date=start_date,
            end_date=end_date,
            days=days,
            notes=notes,
        )
        session.add(request)
        session.flush()
        return request

    @staticmethod
    def get_by_id(session: Session, request_id: int) -> Optional[VacationRequest]:
        return session.get(VacationRequest, request_id)

    @staticmethod
    def list_by_employee(session: Session, employee_id: int) -> List[VacationRequest]:
        stmt = (
            select(VacationRequest)
            .where(VacationRequest.employee_id == employee_id)
            .order_by(VacationRequest.start_date.desc())
        )
        return list(session.execute(stmt).scalars().all())

    @staticmethod
    def find_overlapping(
        session: Session,
        employee_id: int,
        start_date: date,
        end_date: date,
    ) -> List[VacationRequest]:
        """Pending or approved requests sharing at least one day with the range."""
        stmt = select(VacationRequest).where(
            and_(
                VacationRequest.employee_id == employee_id,
                VacationRequest.status.in_([ReviewStatus.PENDING, ReviewStatus.APPROVED]),
                VacationRequest.start_date <= end_date,
                VacationRequest.end_date >= start_date,
            )
        )
        return list(session.execute(stmt).scalars().all())

    @staticmethod
    def sum_days(session: Session, employee_id: int, year: int, status: ReviewStatus) -> int:
        """Days of requests starting in the given year with the given status."""
        stmt = select(func.coalesce(func.sum(VacationRequest.days), 0)).where(
            and_(
                VacationRequest.employee_id == employee_id,
                VacationRequest.status == status,
                VacationRequest.start_date >= date(year, 1, 1),
                VacationRequest.start_date <= date(year, 12, 31),
            )
        )
        return int(session.execute(stmt).scalar() or 0)


# =============================================================================
# Rewards Repositories
# =============================================================================

class BudgetRepository:
    """Repository for Budget operations."""

    @staticmethod
    def create(
        session: Session,
        year: int,
        month: int,
        initial_amount: Decimal,
        description: Optional[str] = None,
    ) -> Budget:
        budget = Budget(
            year=year,
            month=month,
            initial_amount=initial_amount,
            available_amount=initial_amount,
            used_amount=Decimal("0"),
            description=description,
        )
        session.add(budget)
        session.flush()
        return budget

    @staticmethod
    def get_by_id(session: Session, budget_id: int) -> Optional[Budget]:
        return session.get(Budget, budget_id)

    @staticmethod
    def get_by_period(session: Session, year: int, month: int) -> Optional[Budget]:
        stmt = select(Budget).where(and_(Budget.year == year, Budget.month == month, Budget.active == True))
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def list_all(session: Session) -> List[Budget]:
        stmt = select(Budget).order_by(Budget.year.desc(), Budget.month.desc())
        return list(session.execute(stmt).scalars().all())

    @staticmethod
    def sum_initial_for_year(session: Session, year: int) -> Decimal:
        stmt = select(func.coalesce(func.sum(Budget.initial_amount), 0)).where(
            and_(Budget.year == year, Budget.active == True)
        )
        return Decimal(str(session.execute(stmt).scalar() or 0))


class PrizeRepository:
    """Repository for Prize operations."""

    @staticmethod
    def create(
        session: Session,
        name: str,
        cost: Decimal,
        prize_type: PrizeType = PrizeType.PHYSICAL,
        stock: Optional[int] = None,
    ) -> Prize:
        prize = Prize(name=name, cost=cost, prize_type=prize_type, stock=stock)
        session.add(prize)
        session.flush()
        return prize

    @staticmethod
    def get_by_id(session: Session, prize_id: int) -> Optional[Prize]:
        return session.get(Prize, prize_id)

    @staticmethod
    def list_active(session: Session) -> List[Prize]:
        stmt = select(Prize).where(Prize.active == True).order_by(Prize.cost)
        return list(session.execute(stmt).scalars().all())


class PointsRepository:
    """Repository for the points ledger."""

    @staticmethod
    def add(session: Session, employee_id: int, points: int, reason: Optional[str] = None) -> PointsEntry:
        entry = PointsEntry(employee_id=employee_id, points=points, reason=reason)
        session.add(entry)
        session.flush()
        return entry

    @staticmethod
    def balance(session: Session, employee_id: int) -> int:
        stmt = select(func.coalesce(func.sum(PointsEntry.points), 0)).where(PointsEntry.employee_id == employee_id)
        return int(session.execute(stmt).scalar() or 0)


class PrizeAssignmentRepository:
    """Repository for PrizeAssignment operations."""

    @staticmethod
    def create(session: Session, prize_id: int, employee_id: int, actual_cost: Decimal) -> PrizeAssignment:
        assignment = PrizeAssignment(prize_id=prize_id, employee_id=employee_id, actual_cost=actual_cost)
        session.add(assignment)
        session.flush()
        return assignment

    @staticmethod
    def list_by_employee(session: Session, employee_id: int) -> List[PrizeAssignment]:
        stmt = (
            select(PrizeAssignment)
            .where(PrizeAssignment.employee_id == employee_id)
            .order_by(PrizeAssignment.created_at.desc())
        )
        return list(session.execute(stmt).scalars().all())


# =============================================================================
# Audit Log Repository
# =============================================================================

class AuditLogRepository:
    """Repository for AuditLog operations (append-only)."""

    @staticmethod
    def create(
        session: Session,
        actor: str,
        action: str,
        result: str = "success",
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        log = AuditLog(
            actor=actor,
            action=action,
            result=result,
            resource_type=resource_type,
            resource_id=resource_id,
            metadata_json=json.dumps(metadata, default=str) if metadata else None,
        )
        session.add(log)
        session.flush()
        return log

    @staticmethod
    def list_all(
        session: Session,
        limit: int = 100,
        offset: int = 0,
        actor: Optional[str] = None,
        action: Optional[str] = None,
    ) -> List[AuditLog]:
        stmt = select(AuditLog)

        if actor:
            stmt = stmt.where(AuditLog.actor == actor)
        if action:
            stmt = stmt.where(AuditLog.action == action)

        stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(offset).limit(limit)
        return list(session.execute(stmt).scalars().all())
