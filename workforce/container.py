"""
Service container - wires the database, security collaborators and services.
"""

import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from workforce.core.config import Settings, get_settings
from workforce.core.logging import configure_logging, get_logger
from workforce.core.timeutils import get_zone, utcnow
from workforce.db import Database
from workforce.security import EncryptionManager, LockoutPolicy, PasswordManager
from workforce.services import (
    AttendanceService,
    AuthService,
    EmployeeService,
    ExportService,
    FacialService,
    KioskSession,
    PayrollService,
    PhotoStorage,
    PinService,
    RewardsService,
    SystemService,
    VacationService,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class Container:
    settings: Settings
    db: Database

    password_manager: PasswordManager
    encryption_manager: EncryptionManager
    photo_storage: PhotoStorage

    auth: AuthService
    employees: EmployeeService
    pins: PinService
    attendance: AttendanceService
    facial: FacialService
    payroll: PayrollService
    vacations: VacationService
    rewards: RewardsService
    exports: ExportService
    system: SystemService

    def kiosk_session(self) -> KioskSession:
        """A fresh PIN kiosk flow."""
        return KioskSession(employees=self.employees, pins=self.pins, attendance=self.attendance)


def build_container(
    *,
    settings: Optional[Settings] = None,
    master_key: Optional[str] = None,
    db: Optional[Database] = None,
    password_manager: Optional[PasswordManager] = None,
    encryption_manager: Optional[EncryptionManager] = None,
    photo_storage: Optional[PhotoStorage] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Container:
    """
    Build every service with explicit collaborators.

    Anything not passed in is created from ``settings``. The master key
    (argument or ``MASTER_KEY`` environment variable) is only needed when no
    encryption manager is supplied.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if db is None:
        db = Database.sqlite(settings.database_path, echo=settings.sql_debug)
        db.create_all()

    password_manager = password_manager or PasswordManager()

    if encryption_manager is None:
        master_key = master_key or os.environ.get("MASTER_KEY")
        if not master_key:
            raise ValueError("Se requiere la clave maestra para inicializar el cifrado")
        encryption_manager = EncryptionManager(master_key, settings.keys_dir)

    photo_storage = photo_storage or PhotoStorage(settings.photo_storage_dir)
    tz = get_zone(settings.timezone)

    pin_policy = LockoutPolicy(
        max_attempts=settings.pin_max_attempts,
        lockout=timedelta(minutes=settings.pin_lockout_minutes),
    )
    login_policy = LockoutPolicy(
        max_attempts=settings.login_max_attempts,
        lockout=timedelta(seconds=settings.login_lockout_seconds),
    )

    attendance = AttendanceService(db, photo_storage, tz=tz, clock=clock)
    payroll = PayrollService(db, clock=clock)

    container = Container(
        settings=settings,
        db=db,
        password_manager=password_manager,
        encryption_manager=encryption_manager,
        photo_storage=photo_storage,
        auth=AuthService(db, password_manager, login_policy, clock=clock),
        employees=EmployeeService(db, encryption_manager, clock=clock),
        pins=PinService(db, password_manager, encryption_manager, pin_policy, clock=clock),
        attendance=attendance,
        facial=FacialService(
            db,
            photo_storage,
            attendance,
            threshold=settings.facial_confidence_threshold,
            clock=clock,
        ),
        payroll=payroll,
        vacations=VacationService(db, clock=clock),
        rewards=RewardsService(db, clock=clock),
        exports=ExportService(db, payroll, attendance),
        system=SystemService(db, tz=tz, clock=clock),
    )

    logger.info("Services ready (database=%s, timezone=%s)", settings.database_path, settings.timezone)
    return container
