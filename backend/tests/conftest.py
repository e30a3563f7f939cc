import os
import tempfile
from pathlib import Path

import pytest

# must be configured before the application modules are imported
_TMP_DIR = Path(tempfile.mkdtemp(prefix="studentadmin-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_DIR / 'test.db'}")
os.environ.setdefault("JWT_SECRET", "test-only-signing-secret-0123456789abcdef")
os.environ.setdefault("ADMIN_USERNAME", "admin")
os.environ.setdefault("ADMIN_PASSWORD", "admin123")

from sqlmodel import Session  # noqa: E402

from studentadmin import main, services  # noqa: E402
from studentadmin.database import drop_db_and_tables, engine  # noqa: E402
from studentadmin.utils.rate_limit import InMemoryRateLimiter  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db(monkeypatch):
    """Give every test empty tables, the seeded admin and a fresh login limiter."""
    drop_db_and_tables()
    main.bootstrap()
    monkeypatch.setattr(main, "_login_rate_limiter", InMemoryRateLimiter())
    yield


@pytest.fixture
def session():
    with Session(engine) as s:
        yield s


@pytest.fixture
def regular_user(session):
    """A USER-role identity alongside the seeded admin."""
    return services.AuthService(session).create_user("clerk", "clerk123", ["USER"])
