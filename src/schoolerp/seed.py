"""
Demo data.

Run with ``python -m schoolerp.seed``. Safe to run repeatedly: existing
rows are left untouched.
"""

import asyncio

import structlog

from schoolerp.auth.password import PasswordHasher
from schoolerp.config import Settings, get_settings
from schoolerp.db import Database
from schoolerp.db.models import Role, School, SchoolStatus
from schoolerp.logging import configure_logging
from schoolerp.services.school import SchoolService
from schoolerp.services.user import UserService

logger = structlog.get_logger()

DEMO_PASSWORD = "Admin123!"

DEMO_SCHOOL = {
    "code": "DEMO-SCHOOL",
    "name": "Demo School",
    "email": "contact@demoschool.edu",
    "phone": "+1-555-0100",
    "status": SchoolStatus.ACTIVE,
    "timezone": "America/New_York",
    "currency_code": "USD",
}

DEMO_USERS = (
    ("super@school.edu", "Super Admin", Role.SUPERADMIN, False),
    ("admin@school.edu", "School Admin", Role.SCHOOLADMIN, True),
    ("acc@school.edu", "Accountant", Role.ACCOUNTANT, True),
    ("hr@school.edu", "HR Manager", Role.HR, True),
)


async def seed(database: Database, password: str = DEMO_PASSWORD) -> School:
    """
    Create the demo school and its staff accounts if missing.

    Returns:
        The demo school
    """
    async with database.session() as db:
        schools = SchoolService(db)
        users = UserService(db, PasswordHasher.from_settings(database.settings))

        school = await schools.get_by_code(DEMO_SCHOOL["code"])
        if school is None:
            school = School(**DEMO_SCHOOL)
            db.add(school)
            await db.flush()
            logger.info("Seeded school", code=school.code)

        for email, full_name, role, school_bound in DEMO_USERS:
            if await users.get_by_email(email):
                continue
            await users.create(
                email=email,
                password=password,
                full_name=full_name,
                role=role,
                school_id=school.id if school_bound else None,
            )

    return school


async def main(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_json)

    database = Database(settings)
    try:
        if settings.is_sqlite:
            await database.create_all()
        school = await seed(database)
        logger.info("Seed complete", school_id=str(school.id))
    finally:
        await database.dispose()


if __name__ == "__main__":
    asyncio.run(main())
