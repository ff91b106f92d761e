"""
Shared test fixtures.

Every test gets its own SQLite file, key store and photo directory under
pytest's tmp_path, and a clock it can move by hand.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from workforce.container import build_container
from workforce.core.config import Settings
from workforce.db import Database
from workforce.security import EncryptionManager, PasswordManager
from workforce.services import PhotoStorage


class FakeClock:
    """Callable returning a naive UTC time that tests advance explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    # 10:00 in Buenos Aires (UTC-3)
    return FakeClock(datetime(2025, 3, 10, 13, 0, 0))


@pytest.fixture
def db(tmp_path):
    database = Database.sqlite(str(tmp_path / "test.db"))
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def password_manager():
    """Argon2 with minimal cost so the suite stays fast."""
    return PasswordManager(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def encryption_manager(tmp_path):
    return EncryptionManager("test-master-key", keys_dir=str(tmp_path / "keys"), kdf_iterations=1000)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_path=str(tmp_path / "test.db"),
        keys_dir=str(tmp_path / "keys"),
        photo_storage_dir=str(tmp_path / "fotos"),
        log_level="WARNING",
    )


@pytest.fixture
def container(settings, db, password_manager, encryption_manager, clock, tmp_path):
    return build_container(
        settings=settings,
        db=db,
        password_manager=password_manager,
        encryption_manager=encryption_manager,
        photo_storage=PhotoStorage(str(tmp_path / "fotos")),
        clock=clock,
    )


@pytest.fixture
def make_employee(container):
    """Create an employee and return its id."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        n = counter["n"]
        data = {
            "legajo": f"L{n:03d}",
            "first_name": f"Nombre{n}",
            "last_name": "Gómez",
            "dni": f"3000{n:04d}",
            "hire_date": "2023-01-15",
            "base_salary": Decimal("100000"),
        }
        data.update(overrides)
        success, message, employee_id = container.employees.create_employee(data, actor="admin")
        assert success, message
        return employee_id

    return _make
