"""
Security Tests

Field encryption, password hashing, lockout counting, role capabilities
and export sanitization.
"""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pandas as pd
import pytest

from workforce.core.exceptions import PermissionDeniedError
from workforce.db import EmployeeRole
from workforce.security import (
    EncryptionManager,
    LockoutPolicy,
    SessionContext,
    capabilities_for,
    sanitize_dataframe_for_export,
    sanitize_for_spreadsheet,
)


# =============================================================================
# Encryption
# =============================================================================

class TestEncryptionManager:

    def test_round_trip(self, encryption_manager):
        ciphertext = encryption_manager.encrypt("30123456")
        assert ciphertext != "30123456"
        assert encryption_manager.decrypt(ciphertext) == "30123456"

    def test_empty_values_pass_through(self, encryption_manager):
        assert encryption_manager.encrypt(None) is None
        assert encryption_manager.encrypt("") == ""

    def test_keys_survive_restart(self, tmp_path):
        keys_dir = str(tmp_path / "keys")
        first = EncryptionManager("clave", keys_dir=keys_dir, kdf_iterations=1000)
        ciphertext = first.encrypt("dato")

        second = EncryptionManager("clave", keys_dir=keys_dir, kdf_iterations=1000)
        assert second.decrypt(ciphertext) == "dato"

    def test_wrong_master_key(self, tmp_path):
        keys_dir = str(tmp_path / "keys")
        EncryptionManager("clave", keys_dir=keys_dir, kdf_iterations=1000)
        with pytest.raises(ValueError):
            EncryptionManager("otra", keys_dir=keys_dir, kdf_iterations=1000)

    def test_missing_master_key(self, tmp_path):
        with pytest.raises(ValueError):
            EncryptionManager("", keys_dir=str(tmp_path))

    def test_tampered_ciphertext(self, encryption_manager):
        with pytest.raises(ValueError):
            encryption_manager.decrypt("no-es-un-token")

    def test_redaction(self):
        assert EncryptionManager.redact_sensitive("12345678") == "****5678"
        assert EncryptionManager.redact_sensitive("123") == "***"
        assert EncryptionManager.redact_sensitive(None) == ""


class TestPasswordManager:

    def test_hash_and_verify(self, password_manager):
        hashed = password_manager.hash_password("1234")
        assert hashed != "1234"
        assert password_manager.verify_password("1234", hashed)
        assert not password_manager.verify_password("4321", hashed)

    def test_invalid_hash_is_a_mismatch(self, password_manager):
        assert not password_manager.verify_password("1234", "not-a-hash")


# =============================================================================
# Lockout
# =============================================================================

class TestLockoutPolicy:

    def setup_method(self):
        self.policy = LockoutPolicy(max_attempts=3, lockout=timedelta(minutes=15))
        self.now = datetime(2025, 3, 10, 13, 0)
        self.record = SimpleNamespace(failed_attempts=0, locked_until=None)

    def test_locks_on_threshold(self):
        assert self.policy.register_failure(self.record, self.now) is None
        assert self.policy.register_failure(self.record, self.now) is None
        assert self.policy.remaining_attempts(self.record) == 1

        locked_until = self.policy.register_failure(self.record, self.now)
        assert locked_until == self.now + timedelta(minutes=15)
        assert self.policy.is_locked(self.record, self.now)
        assert self.policy.remaining_seconds(self.record, self.now) == 900

    def test_lock_expires(self):
        for _ in range(3):
            self.policy.register_failure(self.record, self.now)

        later = self.now + timedelta(minutes=15)
        assert not self.policy.is_locked(self.record, later)
        assert self.policy.release_if_expired(self.record, later)
        assert self.record.failed_attempts == 0
        assert self.record.locked_until is None

    def test_success_resets(self):
        self.policy.register_failure(self.record, self.now)
        self.policy.register_success(self.record)
        assert self.record.failed_attempts == 0
        assert self.policy.remaining_attempts(self.record) == 3


# =============================================================================
# Permissions
# =============================================================================

class TestPermissions:

    def test_admin_can_process_payroll(self):
        caps = capabilities_for(EmployeeRole.ADMIN_RRHH)
        assert "liquidaciones.process" in caps
        assert "liquidaciones.export" in caps
        assert "sistema.view_logs" in caps

    def test_branch_manager_views_but_does_not_process_payroll(self):
        caps = capabilities_for(EmployeeRole.GERENTE_SUCURSAL)
        assert "liquidaciones.view" in caps
        assert "liquidaciones.process" not in caps
        assert "fichado.manage_pins" in caps

    def test_employee_capabilities(self):
        caps = capabilities_for(EmployeeRole.EMPLEADO)
        assert "vacaciones.request" in caps
        assert "vacaciones.approve" not in caps
        assert "liquidaciones.view" not in caps

    def test_overrides(self):
        caps = capabilities_for(
            EmployeeRole.EMPLEADO,
            {"fichado.reports": True, "premios.redeem": False},
        )
        assert "fichado.reports" in caps
        assert "premios.redeem" not in caps

    def test_session_context(self):
        ctx = SessionContext.start(user_id=1, username="gerente", role=EmployeeRole.GERENTE_SUCURSAL)
        assert ctx.can("fichado.reports")
        assert ctx.can_any(["liquidaciones.process", "liquidaciones.view"])
        ctx.require("vacaciones.approve")
        with pytest.raises(PermissionDeniedError):
            ctx.require("liquidaciones.process")


# =============================================================================
# Export sanitization
# =============================================================================

class TestSanitizer:

    @pytest.mark.parametrize("value", ["=1+1", "+54 11", "-2", "@SUM(A1)", "  =cmd"])
    def test_formula_prefixed(self, value):
        assert sanitize_for_spreadsheet(value) == "'" + value

    @pytest.mark.parametrize("value", ["Pérez", "", 42, -12.5, None])
    def test_other_values_untouched(self, value):
        assert sanitize_for_spreadsheet(value) == value

    def test_dataframe_copy(self):
        df = pd.DataFrame({"Empleado": ["=HYPERLINK(\"x\")", "Ana"], "Neto": [-10.0, 20.0]})
        result = sanitize_dataframe_for_export(df)

        assert result["Empleado"].tolist() == ["'=HYPERLINK(\"x\")", "Ana"]
        assert result["Neto"].tolist() == [-10.0, 20.0]
        assert df["Empleado"][0] == "=HYPERLINK(\"x\")"
