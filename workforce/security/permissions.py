"""
Permissions - Permisos por rol
A single capability table keyed by role, resolved once when a session starts.

Capabilities are ``"<module>.<action>"`` strings, e.g. ``"fichado.reports"``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, Optional

from workforce.core.exceptions import PermissionDeniedError
from workforce.db.models import EmployeeRole


ROLE_PERMISSIONS: Dict[EmployeeRole, Dict[str, Dict[str, bool]]] = {
    EmployeeRole.ADMIN_RRHH: {
        "empleados": {"view": True, "create": True, "edit": True, "delete": True, "manage_roles": True},
        "fichado": {"view": True, "edit": True, "reports": True, "manage_pins": True},
        "vacaciones": {"view": True, "request": True, "approve": True, "reports": True},
        "liquidaciones": {"view": True, "process": True, "export": True},
        "premios": {"view": True, "redeem": True, "manage": True},
        "sistema": {"view_config": True, "edit_config": True, "view_logs": True, "manage_users": True},
    },
    EmployeeRole.GERENTE_SUCURSAL: {
        "empleados": {"view": True, "create": False, "edit": True, "delete": False, "manage_roles": False},
        "fichado": {"view": True, "edit": True, "reports": True, "manage_pins": True},
        "vacaciones": {"view": True, "request": True, "approve": True, "reports": True},
        "liquidaciones": {"view": True, "process": False, "export": False},
        "premios": {"view": True, "redeem": True, "manage": False},
        "sistema": {"view_config": True, "edit_config": False, "view_logs": False, "manage_users": False},
    },
    EmployeeRole.EMPLEADO: {
        "empleados": {"view": False, "create": False, "edit": False, "delete": False, "manage_roles": False},
        "fichado": {"view": True, "edit": False, "reports": False, "manage_pins": False},
        "vacaciones": {"view": True, "request": True, "approve": False, "reports": False},
        "liquidaciones": {"view": False, "process": False, "export": False},
        "premios": {"view": True, "redeem": True, "manage": False},
        "sistema": {"view_config": False, "edit_config": False, "view_logs": False, "manage_users": False},
    },
}


def capabilities_for(
    role: EmployeeRole,
    overrides: Optional[Dict[str, bool]] = None,
) -> FrozenSet[str]:
    """
    Flatten the role table into a set of granted capabilities.

    Args:
        role: Role of the user
        overrides: Per-user ``{"module.action": enabled}`` adjustments
    """
    granted = {
        f"{module}.{action}"
        for module, actions in ROLE_PERMISSIONS.get(role, {}).items()
        for action, enabled in actions.items()
        if enabled
    }

    for capability, enabled in (overrides or {}).items():
        if enabled:
            granted.add(capability)
        else:
            granted.discard(capability)

    return frozenset(granted)


@dataclass(frozen=True)
class SessionContext:
    """Authenticated user plus the capabilities computed at login."""

    user_id: int
    username: str
    role: EmployeeRole
    employee_id: Optional[int] = None
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    started_at: Optional[datetime] = None

    @classmethod
    def start(
        cls,
        user_id: int,
        username: str,
        role: EmployeeRole,
        employee_id: Optional[int] = None,
        overrides: Optional[Dict[str, bool]] = None,
        started_at: Optional[datetime] = None,
    ) -> "SessionContext":
        return cls(
            user_id=user_id,
            username=username,
            role=role,
            employee_id=employee_id,
            capabilities=capabilities_for(role, overrides),
            started_at=started_at,
        )

    def can(self, capability: str) -> bool:
        return capability in self.capabilities

    def can_any(self, capabilities: Iterable[str]) -> bool:
        return any(c in self.capabilities for c in capabilities)

    def require(self, capability: str) -> None:
        """Raise PermissionDeniedError unless the capability was granted."""
        if capability not in self.capabilities:
            raise PermissionDeniedError(f"Permiso denegado: {capability}")
