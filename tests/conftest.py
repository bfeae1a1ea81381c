import asyncio
import os
from dataclasses import dataclass
from uuid import UUID

# schoolerp.api.main builds a module-level app from the environment; pin it first.
os.environ["ENVIRONMENT"] = "development"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_ACCESS_SECRET"] = "test-access-secret-0123456789abcdef"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret-0123456789abcdef"
os.environ["PASSWORD_RESET_SECRET"] = "test-reset-secret-0123456789abcdef"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
for _name in ("REDIS_URL", "SMTP_HOST", "SMTP_USER", "SMTP_PASSWORD", "EMAIL_FROM"):
    os.environ.pop(_name, None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from schoolerp.api.main import create_app  # noqa: E402
from schoolerp.auth.password import PasswordHasher  # noqa: E402
from schoolerp.clock import FrozenClock  # noqa: E402
from schoolerp.config import Settings  # noqa: E402
from schoolerp.db import Database  # noqa: E402
from schoolerp.db.models import Role, School  # noqa: E402
from schoolerp.seed import DEMO_PASSWORD, seed  # noqa: E402
from schoolerp.services.user import UserService  # noqa: E402

PASSWORD = DEMO_PASSWORD
OTHER_ACCOUNTANT = "acc@other.edu"
TEACHER = "teacher@school.edu"


@dataclass
class SeedData:
    school_id: UUID
    other_school_id: UUID


class FakeMailer:
    """Mailer stand-in that records messages instead of sending them."""

    def __init__(self, configured: bool = True):
        self.is_configured = configured
        self.sent: list[tuple[str, str]] = []

    async def send_password_reset_otp(self, to, otp, expires_in_minutes):
        self.sent.append((to, otp))
        return self.is_configured


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "database_url": f"sqlite+aiosqlite:///{tmp_path}/test.db",
        "environment": "development",
        "bcrypt_rounds": 4,
    }
    values.update(overrides)
    return Settings(**values)


async def _seed_all(settings: Settings) -> SeedData:
    database = Database(settings)
    try:
        await database.create_all()
        school = await seed(database)
        async with database.session() as db:
            other = School(code="OTHER-SCHOOL", name="Other School")
            db.add(other)
            await db.flush()
            users = UserService(db, PasswordHasher.from_settings(settings))
            await users.create(OTHER_ACCOUNTANT, PASSWORD, "Other Accountant", Role.ACCOUNTANT, other.id)
            await users.create(TEACHER, PASSWORD, "Teacher", Role.TEACHER, school.id)
        return SeedData(school_id=school.id, other_school_id=other.id)
    finally:
        await database.dispose()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def hasher(settings) -> PasswordHasher:
    return PasswordHasher.from_settings(settings)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def seeded(settings) -> SeedData:
    return asyncio.run(_seed_all(settings))


@pytest.fixture
def app(settings, clock, seeded):
    return create_app(settings, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
async def database(settings):
    db = Database(settings)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
async def session(database):
    async with database.session_factory() as s:
        yield s


def login(client: TestClient, email: str, password: str = PASSWORD) -> dict:
    response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["data"]


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
