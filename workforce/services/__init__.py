"""
Services module - Servicios
Business logic for attendance, PIN kiosk, payroll and HR administration.
"""

from .calculations import (
    DayGroup,
    ReceiptCalculation,
    ReceiptLine,
    compute_receipt,
    day_hours,
    group_by_day,
    quantize_money,
    seniority_years,
)
from .auth import AuthService
from .employees import EmployeeService
from .pins import PinService, PinVerification
from .attendance import AttendanceService, PhotoStorage, next_event_type
from .kiosk import KioskSession, KioskStep, KioskResult
from .facial import FacialService, FaceMatch, match_confidence
from .payroll import PayrollService, PayrollSummary
from .vacations import VacationService, entitlement_days
from .rewards import RewardsService
from .exports import ExportService
from .system import SystemService

__all__ = [
    # Calculations
    "DayGroup",
    "ReceiptCalculation",
    "ReceiptLine",
    "compute_receipt",
    "day_hours",
    "group_by_day",
    "quantize_money",
    "seniority_years",
    # Services
    "AuthService",
    "EmployeeService",
    "PinService",
    "PinVerification",
    "AttendanceService",
    "PhotoStorage",
    "next_event_type",
    "KioskSession",
    "KioskStep",
    "KioskResult",
    "FacialService",
    "FaceMatch",
    "match_confidence",
    "PayrollService",
    "PayrollSummary",
    "VacationService",
    "entitlement_days",
    "RewardsService",
    "ExportService",
    "SystemService",
]
