"""
Database Models - Modelos de base de datos
SQLAlchemy ORM models for attendance, payroll and HR administration.
"""

import enum
from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Integer, String, Text, Boolean, Date, DateTime, Float,
    Numeric, Enum, ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column

from workforce.core.timeutils import utcnow


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# =============================================================================
# Enums
# =============================================================================

class EmployeeRole(enum.Enum):
    """Employee role enumeration."""
    ADMIN_RRHH = "admin_rrhh"                # RRHH - todos los permisos
    GERENTE_SUCURSAL = "gerente_sucursal"    # Gerente de sucursal
    EMPLEADO = "empleado"                    # Empleado


class AttendanceType(enum.Enum):
    """Attendance event type (tipo de fichaje)."""
    ENTRANCE = "entrada"
    EXIT = "salida"
    PAUSE_START = "pausa_inicio"
    PAUSE_END = "pausa_fin"


class AttendanceMethod(enum.Enum):
    PIN = "pin"
    FACIAL = "facial"
    MANUAL = "manual"


class PayrollStatus(enum.Enum):
    PROCESSED = "procesada"
    PAID = "pagada"


class ConceptKind(enum.Enum):
    EARNING = "remunerativo"
    NON_EARNING = "no_remunerativo"
    DEDUCTION = "deduccion"


class ReviewStatus(enum.Enum):
    """Review status shared by vacation requests and facial photo uploads."""
    PENDING = "pendiente"
    APPROVED = "aprobado"
    REJECTED = "rechazado"


class PrizeType(enum.Enum):
    MONETARY = "monetario"
    PHYSICAL = "fisico"


class AssignmentStatus(enum.Enum):
    PENDING = "pendiente"
    COMPLETED = "completado"


# =============================================================================
# Organisation
# =============================================================================

class Branch(Base):
    """
    Branch model - Sucursales
    """
    __tablename__ = "sucursales"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    employees = relationship("Employee", back_populates="branch")

    def __repr__(self):
        return f"<Branch(id={self.id}, name='{self.name}')>"


class Employee(Base):
    """
    Employee model - Empleados
    Identity, role, branch and payroll configuration. The national id (DNI)
    is stored encrypted.
    """
    __tablename__ = "empleados"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    legajo: Mapped[Optional[str]] = mapped_column(String(20), unique=True, nullable=True, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    dni_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role: Mapped[EmployeeRole] = mapped_column(Enum(EmployeeRole), default=EmployeeRole.EMPLEADO)
    branch_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("sucursales.id"), nullable=True)
    hire_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Payroll configuration
    base_salary: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    monthly_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=160)
    health_insurance_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("3"))
    union_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("2.5"))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    branch = relationship("Branch", back_populates="employees")
    user = relationship("User", back_populates="employee", uselist=False)
    pin_credential = relationship("PinCredential", back_populates="employee", uselist=False)
    attendance_events = relationship("AttendanceEvent", back_populates="employee")
    receipts = relationship("PayrollReceipt", back_populates="employee")

    __table_args__ = (
        Index("idx_empleado_branch", "branch_id"),
        Index("idx_empleado_active", "active"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Employee(id={self.id}, legajo='{self.legajo}', name='{self.full_name}')>"


class User(Base):
    """
    User model - Usuarios
    Back-office accounts. Failed logins are tracked on the row.
    """
    __tablename__ = "usuarios"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[EmployeeRole] = mapped_column(Enum(EmployeeRole), default=EmployeeRole.EMPLEADO)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    employee_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("empleados.id"), nullable=True)

    failed_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    employee = relationship("Employee", back_populates="user")

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role={self.role.value})>"


# =============================================================================
# Attendance
# =============================================================================

class PinCredential(Base):
    """
    PIN credential - empleados_pin
    """
    __tablename__ = "empleados_pin"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(Integer, ForeignKey("empleados.id"), unique=True, nullable=False)
    pin_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    failed_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    employee = relationship("Employee", back_populates="pin_credential")


class AttendanceEvent(Base):
    """
    Attendance event - Fichajes
    Append-only clock-in/out record.
    """
    __tablename__ = "fichajes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(Integer, ForeignKey("empleados.id"), nullable=False)
    event_type: Mapped[AttendanceType] = mapped_column(Enum(AttendanceType), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    method: Mapped[AttendanceMethod] = mapped_column(Enum(AttendanceMethod), nullable=False)
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="valido")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    employee = relationship("Employee", back_populates="attendance_events")
    photo = relationship("VerificationPhoto", back_populates="event", uselist=False)

    __table_args__ = (
        Index("idx_fichaje_employee_ts", "employee_id", "timestamp"),
        Index("idx_fichaje_ts", "timestamp"),
    )

    def __repr__(self):
        return f"<AttendanceEvent(employee_id={self.employee_id}, type={self.event_type.value}, ts={self.timestamp})>"


class VerificationPhoto(Base):
    """
    Verification photo - fichajes_fotos_verificacion
    One photo per attendance event.
    """
    __tablename__ = "fichajes_fotos_verificacion"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(Integer, ForeignKey("fichajes.id"), unique=True, nullable=False)
    employee_id: Mapped[int] = mapped_column(Integer, ForeignKey("empleados.id"), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(255), nullable=False)
    method: Mapped[AttendanceMethod] = mapped_column(Enum(AttendanceMethod), nullable=False)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    event = relationship("AttendanceEvent", back_populates="photo")


class FacialPhotoUpload(Base):
    """
    Facial reference photo awaiting review - facial_photo_uploads
    """
    __tablename__ = "facial_photo_uploads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(Integer, ForeignKey("empleados.id"), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[ReviewStatus] = mapped_column(Enum(ReviewStatus), default=ReviewStatus.PENDING)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class FaceDescriptor(Base):
    """
    Face descriptor - empleados_rostros
    Descriptor vectors produced by the external face model, stored as JSON.
    """
    __tablename__ = "empleados_rostros"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(Integer, ForeignKey("empleados.id"), nullable=False)
    descriptor_json: Mapped[str] = mapped_column(Text, nullable=False)
    upload_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("facial_photo_uploads.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_rostro_employee_active", "employee_id", "is_active"),
    )


# =============================================================================
# Payroll
# =============================================================================

class PayrollConcept(Base):
    """
    Payroll concept - conceptos_liquidacion
    The formula text is stored for reference only.
    """
    __tablename__ = "conceptos_liquidacion"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[ConceptKind] = mapped_column(Enum(ConceptKind), nullable=False)
    formula: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)


class PayrollRun(Base):
    """
    Payroll run - liquidaciones_mensuales
    One liquidation per month.
    """
    __tablename__ = "liquidaciones_mensuales"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[PayrollStatus] = mapped_column(Enum(PayrollStatus), default=PayrollStatus.PROCESSED)

    total_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gross: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=0)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=0)
    total_net: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=0)

    processed_by: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    receipts = relationship("PayrollReceipt", back_populates="payroll_run", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_liquidacion_periodo"),
    )

    @property
    def period(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def __repr__(self):
        return f"<PayrollRun(id={self.id}, period='{self.period}', status={self.status.value})>"


class PayrollReceipt(Base):
    """
    Payroll receipt - recibos_sueldo
    Derived from the run; earnings and deduction lines are stored as JSON.
    """
    __tablename__ = "recibos_sueldo"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payroll_run_id: Mapped[int] = mapped_column(Integer, ForeignKey("liquidaciones_mensuales.id"), nullable=False)
    employee_id: Mapped[int] = mapped_column(Integer, ForeignKey("empleados.id"), nullable=False)
    period: Mapped[str] = mapped_column(String(7), nullable=False)

    earnings_json: Mapped[str] = mapped_column(Text, nullable=False)
    deductions_json: Mapped[str] = mapped_column(Text, nullable=False)

    total_earnings: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    payroll_run = relationship("PayrollRun", back_populates="receipts")
    employee = relationship("Employee", back_populates="receipts")

    __table_args__ = (
        UniqueConstraint("payroll_run_id", "employee_id", name="uq_recibo_run_employee"),
        Index("idx_recibo_employee", "employee_id"),
    )

    def __repr__(self):
        return f"<PayrollReceipt(run_id={self.payroll_run_id}, employee_id={self.employee_id}, net={self.net_pay})>"


# =============================================================================
# Vacations
# =============================================================================

class VacationRequest(Base):
    """
    Vacation request - solicitudes_vacaciones
    """
    __tablename__ = "solicitudes_vacaciones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(Integer, ForeignKey("empleados.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    days: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ReviewStatus] = mapped_column(Enum(ReviewStatus), default=ReviewStatus.PENDING)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_vacaciones_employee", "employee_id", "start_date"),
    )


# =============================================================================
# Rewards
# =============================================================================

class Budget(Base):
    """
    Monthly prize budget - presupuesto_empresa
    """
    __tablename__ = "presupuesto_empresa"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    initial_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    available_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    used_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_presupuesto_periodo"),
    )


class Prize(Base):
    """
    Prize - premios
    A null stock means unlimited.
    """
    __tablename__ = "premios"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    prize_type: Mapped[PrizeType] = mapped_column(Enum(PrizeType), default=PrizeType.PHYSICAL)
    cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    stock: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)


class PointsEntry(Base):
    """
    Points ledger - puntos
    """
    __tablename__ = "puntos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(Integer, ForeignKey("empleados.id"), nullable=False, index=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class PrizeAssignment(Base):
    """
    Prize assignment - asignaciones_premio
    """
    __tablename__ = "asignaciones_premio"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    prize_id: Mapped[int] = mapped_column(Integer, ForeignKey("premios.id"), nullable=False)
    employee_id: Mapped[int] = mapped_column(Integer, ForeignKey("empleados.id"), nullable=False)
    status: Mapped[AssignmentStatus] = mapped_column(Enum(AssignmentStatus), default=AssignmentStatus.PENDING)
    actual_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


# =============================================================================
# Audit
# =============================================================================

class AuditLog(Base):
    """
    Audit Log model - Auditoría
    Stores all sensitive operations.
    """
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    resource_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    resource_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    result: Mapped[str] = mapped_column(String(20), nullable=False, default="success")
    metadata_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_audit_created", "created_at"),
        Index("idx_audit_actor_action", "actor", "action"),
    )

    def __repr__(self):
        return f"<AuditLog(id={self.id}, actor='{self.actor}', action='{self.action}')>"
