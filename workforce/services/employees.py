"""
Employee Service - Gestión de empleados y sucursales
"""

import re
from datetime import datetime, date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from workforce.core.logging import get_logger
from workforce.core.timeutils import utcnow
from workforce.db import (
    Database,
    Employee,
    EmployeeRole,
    BranchRepository,
    EmployeeRepository,
    AuditLogRepository,
)
from workforce.security import EncryptionManager

logger = get_logger(__name__)

DNI_PATTERN = re.compile(r"^\d{7,8}$")


def normalize_dni(value: Any) -> str:
    """Strip dots, spaces and dashes from a DNI."""
    if value is None:
        return ""
    return re.sub(r"[.\s-]", "", str(value)).strip()


def parse_date(value: Any) -> Optional[date]:
    """Accept dates, pandas timestamps and ISO or dd/mm/yyyy strings."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if hasattr(value, "date"):
        return value.date()

    text = str(value).strip()
    if not text:
        return None
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Fecha inválida: {text}")


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Importe inválido: {value}")


def _employee_to_dict(employee: Employee) -> Dict[str, Any]:
    return {
        "id": employee.id,
        "legajo": employee.legajo,
        "first_name": employee.first_name,
        "last_name": employee.last_name,
        "full_name": employee.full_name,
        "role": employee.role.value,
        "branch_id": employee.branch_id,
        "hire_date": employee.hire_date,
        "active": employee.active,
        "base_salary": employee.base_salary,
        "monthly_hours": employee.monthly_hours,
        "health_insurance_rate": employee.health_insurance_rate,
        "union_rate": employee.union_rate,
    }


class EmployeeService:
    """
    Employee management service.
    """

    # Spreadsheet header aliases
    EMPLOYEE_COLUMNS = {
        "Legajo": "legajo",
        "N° Legajo": "legajo",
        "Nombre": "first_name",
        "Nombres": "first_name",
        "Apellido": "last_name",
        "Apellidos": "last_name",
        "DNI": "dni",
        "Documento": "dni",
        "Rol": "role",
        "Sucursal": "branch",
        "Fecha de ingreso": "hire_date",
        "Fecha ingreso": "hire_date",
        "Ingreso": "hire_date",
        "Sueldo básico": "base_salary",
        "Sueldo basico": "base_salary",
        "Horas mensuales": "monthly_hours",
        "Obra social %": "health_insurance_rate",
        "Sindicato %": "union_rate",
    }

    def __init__(
        self,
        db: Database,
        encryption_manager: EncryptionManager,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.encryption_manager = encryption_manager
        self.clock = clock

    # -------------------------------------------------------------------------
    # Branches
    # -------------------------------------------------------------------------

    def create_branch(self, name: str, actor: str) -> Tuple[bool, str, Optional[int]]:
        name = (name or "").strip()
        if not name:
            return False, "El nombre de la sucursal es obligatorio", None

        with self.db.session_scope() as session:
            if BranchRepository.get_by_name(session, name):
                return False, f"La sucursal {name} ya existe", None

            branch = BranchRepository.create(session, name)
            AuditLogRepository.create(
                session,
                actor=actor,
                action="create_branch",
                resource_type="branch",
                resource_id=branch.id,
            )
            return True, f"Sucursal {name} creada", branch.id

    def list_branches(self) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            return [{"id": b.id, "name": b.name} for b in BranchRepository.list_all(session)]

    # -------------------------------------------------------------------------
    # Employees
    # -------------------------------------------------------------------------

    def _validate(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Normalize input fields; raises ValueError with a user message."""
        fields: Dict[str, Any] = {}

        if "legajo" in data:
            legajo = str(data.get("legajo") or "").strip()
            fields["legajo"] = legajo or None

        for key, label in (("first_name", "nombre"), ("last_name", "apellido")):
            if key in data:
                value = str(data.get(key) or "").strip()
                if not value:
                    raise ValueError(f"El {label} es obligatorio")
                fields[key] = value

        if "dni" in data:
            dni = normalize_dni(data.get("dni"))
            if dni and not DNI_PATTERN.match(dni):
                raise ValueError("El DNI debe tener 7 u 8 dígitos")
            fields["dni_encrypted"] = self.encryption_manager.encrypt(dni) if dni else None

        if "role" in data and data["role"] is not None:
            role = data["role"]
            if not isinstance(role, EmployeeRole):
                try:
                    role = EmployeeRole(str(role).strip().lower())
                except ValueError:
                    raise ValueError(f"Rol inválido: {role}")
            fields["role"] = role

        if "branch_id" in data:
            fields["branch_id"] = data["branch_id"]

        if "hire_date" in data:
            fields["hire_date"] = parse_date(data.get("hire_date"))

        if "base_salary" in data:
            base_salary = _to_decimal(data.get("base_salary"))
            if base_salary is not None and base_salary <= 0:
                raise ValueError("El sueldo básico debe ser mayor a cero")
            fields["base_salary"] = base_salary

        if data.get("monthly_hours") is not None:
            hours = int(data["monthly_hours"])
            if hours <= 0:
                raise ValueError("Las horas mensuales deben ser mayores a cero")
            fields["monthly_hours"] = hours

        for key in ("health_insurance_rate", "union_rate"):
            if data.get(key) is not None:
                rate = _to_decimal(data[key])
                if rate < 0 or rate > 100:
                    raise ValueError("Los porcentajes deben estar entre 0 y 100")
                fields[key] = rate

        return fields

    def create_employee(self, data: Dict[str, Any], actor: str) -> Tuple[bool, str, Optional[int]]:
        """
        Create a new employee.

        Args:
            data: Employee fields (first_name, last_name, legajo, dni, role,
                branch_id, hire_date, base_salary, monthly_hours,
                health_insurance_rate, union_rate)
            actor: Username creating the employee

        Returns:
            Tuple of (success, message, employee_id)
        """
        data = dict(data)
        data.setdefault("first_name", "")
        data.setdefault("last_name", "")

        try:
            fields = self._validate(data)
        except ValueError as e:
            return False, str(e), None

        with self.db.session_scope() as session:
            legajo = fields.get("legajo")
            if legajo and EmployeeRepository.get_by_legajo(session, legajo):
                return False, f"El legajo {legajo} ya existe", None

            if fields.get("branch_id") is not None and not BranchRepository.get_by_id(session, fields["branch_id"]):
                return False, "Sucursal no encontrada", None

            employee = EmployeeRepository.create(session, **fields)

            AuditLogRepository.create(
                session,
                actor=actor,
                action="create_employee",
                resource_type="employee",
                resource_id=employee.id,
            )

            return True, f"Empleado {employee.full_name} creado", employee.id

    def get_employee(self, employee_id: int, can_view_sensitive: bool = False) -> Optional[Dict[str, Any]]:
        """Employee data; the DNI is redacted unless the caller may see it."""
        with self.db.session_scope() as session:
            employee = EmployeeRepository.get_by_id(session, employee_id)
            if not employee:
                return None

            result = _employee_to_dict(employee)

            dni = None
            if employee.dni_encrypted:
                try:
                    dni = self.encryption_manager.decrypt(employee.dni_encrypted)
                except ValueError:
                    logger.warning("Could not decrypt DNI of employee %s", employee_id)

            result["dni"] = dni if can_view_sensitive else self.encryption_manager.redact_sensitive(dni)
            return result

    def list_employees(self, active: Optional[bool] = None, branch_id: Optional[int] = None) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            employees = EmployeeRepository.list_all(session, active=active, branch_id=branch_id)
            return [_employee_to_dict(e) for e in employees]

    def search_employees(self, query: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Active employees by name or legajo; queries under 2 characters return nothing."""
        query = (query or "").strip()
        if len(query) < 2:
            return []

        with self.db.session_scope() as session:
            return [_employee_to_dict(e) for e in EmployeeRepository.search(session, query, limit)]

    def count_active(self) -> int:
        with self.db.session_scope() as session:
            return EmployeeRepository.count_active(session)

    def update_employee(self, employee_id: int, data: Dict[str, Any], actor: str) -> Tuple[bool, str]:
        try:
            fields = self._validate(data)
        except ValueError as e:
            return False, str(e)

        with self.db.session_scope() as session:
            employee = EmployeeRepository.get_by_id(session, employee_id)
            if not employee:
                return False, "Empleado no encontrado"

            legajo = fields.get("legajo")
            if legajo:
                other = EmployeeRepository.get_by_legajo(session, legajo)
                if other and other.id != employee_id:
                    return False, f"El legajo {legajo} ya existe"

            if fields:
                for key, value in fields.items():
                    setattr(employee, key, value)

                AuditLogRepository.create(
                    session,
                    actor=actor,
                    action="update_employee",
                    resource_type="employee",
                    resource_id=employee_id,
                    metadata={"fields": sorted(k for k in fields if k != "dni_encrypted")},
                )

            return True, "Empleado actualizado"

    def deactivate_employee(self, employee_id: int, actor: str) -> Tuple[bool, str]:
        with self.db.session_scope() as session:
            employee = EmployeeRepository.get_by_id(session, employee_id)
            if not employee:
                return False, "Empleado no encontrado"

            employee.active = False
            if employee.pin_credential is not None:
                employee.pin_credential.active = False

            AuditLogRepository.create(
                session,
                actor=actor,
                action="deactivate_employee",
                resource_type="employee",
                resource_id=employee_id,
            )
            return True, f"Empleado {employee.full_name} dado de baja"

    def reassign_branch(
        self,
        employee_ids: Sequence[int],
        branch_id: Optional[int],
        actor: str,
    ) -> Tuple[bool, str, int]:
        """
        Move several employees to a branch in one transaction.

        Either every listed employee is moved or none is.

        Returns:
            Tuple of (success, message, updated_count)
        """
        employee_ids = sorted(set(employee_ids or []))
        if not employee_ids:
            return False, "No se seleccionaron empleados", 0

        try:
            with self.db.session_scope() as session:
                if branch_id is not None and not BranchRepository.get_by_id(session, branch_id):
                    return False, "Sucursal no encontrada", 0

                updated = EmployeeRepository.reassign_branch(session, employee_ids, branch_id)
                if updated != len(employee_ids):
                    raise ValueError(f"Se esperaban {len(employee_ids)} empleados y se encontraron {updated}")

                AuditLogRepository.create(
                    session,
                    actor=actor,
                    action="reassign_branch",
                    resource_type="branch",
                    resource_id=branch_id,
                    metadata={"employee_ids": employee_ids},
                )
        except ValueError as e:
            return False, f"No se reasignaron empleados: {e}", 0
        except Exception:
            logger.exception("Bulk branch reassignment failed")
            return False, "Error al reasignar empleados. Intente nuevamente", 0

        return True, f"{updated} empleados reasignados", updated

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    @classmethod
    def _rename_columns(cls, df: pd.DataFrame) -> pd.DataFrame:
        mapping = {col: cls.EMPLOYEE_COLUMNS[col] for col in df.columns if col in cls.EMPLOYEE_COLUMNS}
        return df.rename(columns=mapping)

    def _branch_id_for(self, name: Any, actor: str) -> Optional[int]:
        if name is None or (not isinstance(name, str) and pd.isna(name)):
            return None
        name = str(name).strip()
        if not name:
            return None

        with self.db.session_scope() as session:
            branch = BranchRepository.get_by_name(session, name)
            if branch:
                return branch.id

        _, _, branch_id = self.create_branch(name, actor)
        return branch_id

    def import_employees(self, df: pd.DataFrame, actor: str) -> Tuple[bool, str, int]:
        """
        Import employees from a spreadsheet.

        Rows are created one by one; failing rows are reported and skipped.

        Returns:
            Tuple of (success, message, imported_count)
        """
        df = self._rename_columns(df)
        df = df.astype(object).where(pd.notna(df), None)

        imported_count = 0
        errors = []
        total_rows = len(df)

        for idx, row in df.iterrows():
            row_number = idx + 2  # header is row 1
            try:
                data = {
                    key: row.get(key)
                    for key in ("legajo", "first_name", "last_name", "dni", "hire_date",
                                "base_salary", "monthly_hours", "health_insurance_rate", "union_rate")
                    if key in row and row.get(key) is not None
                }
                if isinstance(data.get("legajo"), float) and data["legajo"].is_integer():
                    data["legajo"] = str(int(data["legajo"]))
                if "dni" in data and isinstance(data["dni"], float):
                    data["dni"] = str(int(data["dni"]))
                if row.get("role") is not None:
                    data["role"] = row.get("role")
                data["branch_id"] = self._branch_id_for(row.get("branch"), actor)

                success, message, _ = self.create_employee(data, actor)
                if success:
                    imported_count += 1
                else:
                    errors.append(f"Fila {row_number}: {message}")
            except ValueError as e:
                errors.append(f"Fila {row_number}: {e}")
            except Exception:
                logger.exception("Import failed on row %s", row_number)
                errors.append(f"Fila {row_number}: error inesperado")

        failed_count = len(errors)
        if imported_count == 0 and total_rows > 0:
            return False, f"No se importó ningún empleado: {'; '.join(errors[:10])}", 0
        if failed_count:
            summary = "; ".join(errors[:5])
            if failed_count > 5:
                summary += f"... y {failed_count - 5} errores más"
            return True, f"Importados {imported_count}/{total_rows} empleados. Errores: {summary}", imported_count
        return True, f"Importados {imported_count} empleados", imported_count
