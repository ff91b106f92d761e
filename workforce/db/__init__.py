"""
Database module - Base de datos
Provides ORM models, repositories, and session management.
"""

from .session import Database, init_database
from .models import (
    Base,
    Branch,
    Employee,
    EmployeeRole,
    User,
    PinCredential,
    AttendanceEvent,
    AttendanceType,
    AttendanceMethod,
    VerificationPhoto,
    FacialPhotoUpload,
    FaceDescriptor,
    ReviewStatus,
    PayrollConcept,
    ConceptKind,
    PayrollRun,
    PayrollStatus,
    PayrollReceipt,
    VacationRequest,
    Budget,
    Prize,
    PrizeType,
    PointsEntry,
    PrizeAssignment,
    AssignmentStatus,
    AuditLog,
)
from .repositories import (
    BranchRepository,
    EmployeeRepository,
    UserRepository,
    PinRepository,
    AttendanceRepository,
    VerificationPhotoRepository,
    FacialRepository,
    PayrollConceptRepository,
    PayrollRunRepository,
    PayrollReceiptRepository,
    VacationRepository,
    BudgetRepository,
    PrizeRepository,
    PointsRepository,
    PrizeAssignmentRepository,
    AuditLogRepository,
)

__all__ = [
    # Session
    "Database",
    "init_database",
    # Models
    "Base",
    "Branch",
    "Employee",
    "EmployeeRole",
    "User",
    "PinCredential",
    "AttendanceEvent",
    "AttendanceType",
    "AttendanceMethod",
    "VerificationPhoto",
    "FacialPhotoUpload",
    "FaceDescriptor",
    "ReviewStatus",
    "PayrollConcept",
    "ConceptKind",
    "PayrollRun",
    "PayrollStatus",
    "PayrollReceipt",
    "VacationRequest",
    "Budget",
    "Prize",
    "PrizeType",
    "PointsEntry",
    "PrizeAssignment",
    "AssignmentStatus",
    "AuditLog",
    # Repositories
    "BranchRepository",
    "EmployeeRepository",
    "UserRepository",
    "PinRepository",
    "AttendanceRepository",
    "VerificationPhotoRepository",
    "FacialRepository",
    "PayrollConceptRepository",
    "PayrollRunRepository",
    "PayrollReceiptRepository",
    "VacationRepository",
    "BudgetRepository",
    "PrizeRepository",
    "PointsRepository",
    "PrizeAssignmentRepository",
    "AuditLogRepository",
]
