"""
Auth Service - Autenticación de usuarios
Back-office login with a persisted lockout, user creation and password changes.
"""

import secrets
from datetime import datetime
from typing import Callable, Optional, Tuple

from workforce.core.logging import get_logger
from workforce.core.timeutils import utcnow
from workforce.db import (
    Database,
    EmployeeRole,
    UserRepository,
    EmployeeRepository,
    AuditLogRepository,
)
from workforce.security import LockoutPolicy, PasswordManager, SessionContext

logger = get_logger(__name__)


class AuthService:
    """
    Authentication service.
    """

    MIN_USERNAME_LENGTH = 3
    MIN_PASSWORD_LENGTH = 8
    INVALID_CREDENTIALS = "Usuario o contraseña incorrectos"

    def __init__(
        self,
        db: Database,
        password_manager: PasswordManager,
        policy: LockoutPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.password_manager = password_manager
        self.policy = policy
        self.clock = clock
        self._dummy_hash: Optional[str] = None

    def _verify_dummy(self, password: str) -> None:
        # Unknown users still pay for one hash verification
        if self._dummy_hash is None:
            self._dummy_hash = self.password_manager.hash_password(secrets.token_hex(16))
        self.password_manager.verify_password(password, self._dummy_hash)

    def login(self, username: str, password: str) -> Tuple[bool, Optional[SessionContext], str]:
        """
        Authenticate a user and start a session.

        Returns:
            Tuple of (success, session_context, message)
        """
        now = self.clock()

        with self.db.session_scope() as session:
            user = UserRepository.get_by_username(session, username or "")

            if user is None:
                self._verify_dummy(password or "")
                return False, None, self.INVALID_CREDENTIALS

            self.policy.release_if_expired(user, now)
            if self.policy.is_locked(user, now):
                remaining = self.policy.remaining_seconds(user, now)
                return False, None, f"Cuenta bloqueada. Intente nuevamente en {remaining} segundos"

            password_valid = self.password_manager.verify_password(password or "", user.password_hash)

            if not user.is_active:
                return False, None, self.INVALID_CREDENTIALS

            if not password_valid:
                locked_until = self.policy.register_failure(user, now)
                AuditLogRepository.create(
                    session,
                    actor=username,
                    action="login",
                    result="failure",
                    resource_type="user",
                    resource_id=user.id,
                )
                if locked_until is not None:
                    logger.warning("User %s locked until %s", username, locked_until)
                    return False, None, "Cuenta bloqueada por demasiados intentos fallidos"
                remaining_attempts = self.policy.remaining_attempts(user)
                return False, None, f"{self.INVALID_CREDENTIALS} ({remaining_attempts} intentos restantes)"

            self.policy.register_success(user)
            user.last_login = now

            if self.password_manager.needs_rehash(user.password_hash):
                user.password_hash = self.password_manager.hash_password(password)

            AuditLogRepository.create(
                session,
                actor=username,
                action="login",
                result="success",
                resource_type="user",
                resource_id=user.id,
            )

            context = SessionContext.start(
                user_id=user.id,
                username=user.username,
                role=user.role,
                employee_id=user.employee_id,
                started_at=now,
            )
            return True, context, "Inicio de sesión correcto"

    def create_user(
        self,
        username: str,
        password: str,
        role: EmployeeRole,
        actor: str,
        employee_id: Optional[int] = None,
    ) -> Tuple[bool, str, Optional[int]]:
        """
        Create a new back-office user.

        Returns:
            Tuple of (success, message, user_id)
        """
        username = (username or "").strip()
        if len(username) < self.MIN_USERNAME_LENGTH:
            return False, f"El usuario debe tener al menos {self.MIN_USERNAME_LENGTH} caracteres", None

        if not password or len(password) < self.MIN_PASSWORD_LENGTH:
            return False, f"La contraseña debe tener al menos {self.MIN_PASSWORD_LENGTH} caracteres", None

        password_hash = self.password_manager.hash_password(password)

        with self.db.session_scope() as session:
            if UserRepository.get_by_username(session, username):
                return False, "El usuario ya existe", None

            if employee_id is not None and EmployeeRepository.get_by_id(session, employee_id) is None:
                return False, "Empleado no encontrado", None

            user = UserRepository.create(
                session,
                username=username,
                password_hash=password_hash,
                role=role,
                employee_id=employee_id,
            )

            AuditLogRepository.create(
                session,
                actor=actor,
                action="create_user",
                resource_type="user",
                resource_id=user.id,
                metadata={"role": role.value},
            )

            return True, f"Usuario {username} creado", user.id

    def change_password(self, user_id: int, new_password: str, actor: str) -> Tuple[bool, str]:
        if not new_password or len(new_password) < self.MIN_PASSWORD_LENGTH:
            return False, f"La contraseña debe tener al menos {self.MIN_PASSWORD_LENGTH} caracteres"

        password_hash = self.password_manager.hash_password(new_password)

        with self.db.session_scope() as session:
            if not UserRepository.update_password(session, user_id, password_hash):
                return False, "Usuario no encontrado"

            AuditLogRepository.create(
                session,
                actor=actor,
                action="change_password",
                resource_type="user",
                resource_id=user_id,
            )
            return True, "Contraseña actualizada"

    def unlock_user(self, user_id: int, actor: str) -> Tuple[bool, str]:
        """Clear failed attempts and any lockout of a user."""
        with self.db.session_scope() as session:
            user = UserRepository.get_by_id(session, user_id)
            if user is None:
                return False, "Usuario no encontrado"

            self.policy.register_success(user)
            AuditLogRepository.create(
                session,
                actor=actor,
                action="unlock_user",
                resource_type="user",
                resource_id=user_id,
            )
            return True, f"Usuario {user.username} desbloqueado"

    def is_initialized(self) -> bool:
        """True once at least one active user exists."""
        with self.db.session_scope() as session:
            return UserRepository.count(session) > 0

    def initialize_system(self, admin_username: str, admin_password: str) -> Tuple[bool, str]:
        """Create the first HR administrator."""
        if self.is_initialized():
            return False, "El sistema ya fue inicializado"

        success, message, _ = self.create_user(
            admin_username,
            admin_password,
            EmployeeRole.ADMIN_RRHH,
            actor="system_init",
        )
        if success:
            return True, "Sistema inicializado"
        return False, message
