"""
Export Service - Exportaciones
Payroll receipts to Excel and attendance day reports to CSV.
"""

import hashlib
from datetime import date
from typing import Optional, Tuple

import pandas as pd

from workforce.core.timeutils import to_local
from workforce.db import Database, AuditLogRepository
from workforce.security import sanitize_dataframe_for_export
from .attendance import AttendanceService
from .payroll import PayrollService


def file_sha256(file_path: str) -> str:
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for block in iter(lambda: f.read(4096), b""):
            sha256_hash.update(block)
    return sha256_hash.hexdigest()


class ExportService:
    """
    Report export service.
    """

    PAYROLL_COLUMNS = {
        "legajo": "Legajo",
        "employee_name": "Empleado",
        "period": "Período",
        "total_earnings": "Total haberes",
        "total_deductions": "Total descuentos",
        "net_pay": "Neto a cobrar",
    }

    def __init__(self, db: Database, payroll: PayrollService, attendance: AttendanceService):
        self.db = db
        self.payroll = payroll
        self.attendance = attendance

    def payroll_dataframe(self, run_id: int) -> pd.DataFrame:
        """One row per receipt with every concept as its own column."""
        rows = []
        for receipt in self.payroll.list_receipts(run_id):
            row = {label: receipt[key] for key, label in self.PAYROLL_COLUMNS.items()}
            for line in receipt["earnings"] + receipt["deductions"]:
                row[f"{line['code']} {line['description']}"] = float(line["amount"])
            for key in ("total_earnings", "total_deductions", "net_pay"):
                row[self.PAYROLL_COLUMNS[key]] = float(receipt[key])
            rows.append(row)

        df = pd.DataFrame(rows)
        if df.empty:
            return df

        fixed = [self.PAYROLL_COLUMNS[k] for k in ("legajo", "employee_name", "period")]
        totals = [self.PAYROLL_COLUMNS[k] for k in ("total_earnings", "total_deductions", "net_pay")]
        concepts = sorted(c for c in df.columns if c not in fixed + totals)
        df = df[fixed + concepts + totals].copy()
        for column in concepts:
            df[column] = df[column].fillna(0.0)
        return df

    def export_payroll_summary(self, run_id: int, output_path: str, actor: str) -> Tuple[bool, str, Optional[str], Optional[str]]:
        """
        Export a liquidation to Excel.

        Returns:
            Tuple of (success, message, file_path, file_hash)
        """
        df = self.payroll_dataframe(run_id)
        if df.empty:
            return False, "La liquidación no tiene recibos", None, None

        df = sanitize_dataframe_for_export(df)
        df.to_excel(output_path, index=False, engine="openpyxl", sheet_name="Liquidación")
        file_hash = file_sha256(output_path)

        with self.db.session_scope() as session:
            AuditLogRepository.create(
                session,
                actor=actor,
                action="export_payroll_summary",
                resource_type="payroll_run",
                resource_id=run_id,
                metadata={"file_hash": file_hash},
            )

        return True, "Exportación completada", output_path, file_hash

    def attendance_dataframe(self, employee_id: int, start_date: date, end_date: date) -> pd.DataFrame:
        rows = []
        for group in self.attendance.employee_day_report(employee_id, start_date, end_date):
            rows.append({
                "Fecha": group.day.isoformat(),
                "Entrada": self._local_time(group.entrance),
                "Salida": self._local_time(group.exit),
                "Fichajes": len(group.events),
                "Horas": group.total_hours,
            })
        return pd.DataFrame(rows, columns=["Fecha", "Entrada", "Salida", "Fichajes", "Horas"])

    def _local_time(self, value) -> str:
        if value is None:
            return ""
        return to_local(value, self.attendance.tz).strftime("%H:%M")

    def export_attendance_report(
        self,
        employee_id: int,
        start_date: date,
        end_date: date,
        output_path: str,
        actor: str,
    ) -> Tuple[bool, str, Optional[str], Optional[str]]:
        """
        Export an employee's day report to CSV.

        Returns:
            Tuple of (success, message, file_path, file_hash)
        """
        df = self.attendance_dataframe(employee_id, start_date, end_date)
        if df.empty:
            return False, "No hay fichajes en el período", None, None

        df = sanitize_dataframe_for_export(df)
        df.to_csv(output_path, index=False, encoding="utf-8")
        file_hash = file_sha256(output_path)

        with self.db.session_scope() as session:
            AuditLogRepository.create(
                session,
                actor=actor,
                action="export_attendance_report",
                resource_type="employee",
                resource_id=employee_id,
                metadata={"from": start_date.isoformat(), "to": end_date.isoformat(), "file_hash": file_hash},
            )

        return True, "Exportación completada", output_path, file_hash
