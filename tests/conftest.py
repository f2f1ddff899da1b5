import os
import sys
from collections.abc import AsyncGenerator
from datetime import date, time, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

SQLITE_TEST_DATABASE_URL = "sqlite+aiosqlite:///./test_clinic_booking.db"

# Test database URL - MUST be different from the application database
# Set TEST_DATABASE_URL in .env or use environment variable
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

if not TEST_DATABASE_URL:
    app_database_url = os.getenv("DATABASE_URL", "")
    if app_database_url.startswith("postgresql"):
        # Fallback to the application database but add _test suffix to its name
        base_url, _, params = app_database_url.partition("?")
        base_path, db_name = base_url.rsplit("/", 1)
        TEST_DATABASE_URL = f"{base_path}/{db_name}_test"
        if params:
            TEST_DATABASE_URL = f"{TEST_DATABASE_URL}?{params}"

        print("\n⚠️  WARNING: TEST_DATABASE_URL not set in environment")
        print(f"Using auto-generated test database: {TEST_DATABASE_URL}")
        print("Set TEST_DATABASE_URL in .env to avoid this warning\n")
    else:
        TEST_DATABASE_URL = SQLITE_TEST_DATABASE_URL

        print("\n⚠️  WARNING: no PostgreSQL database configured for tests")
        print(f"Using {TEST_DATABASE_URL}; the row-lock tests will be SKIPPED")
        print("Set DATABASE_URL or TEST_DATABASE_URL to a PostgreSQL database to run them\n")

ROW_LOCKS_AVAILABLE = TEST_DATABASE_URL.startswith("postgresql")

# Settings refuse to load without these
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./clinic_booking_dev.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-tests-only")

from clinic_booking.config import settings  # noqa: E402
from clinic_booking.core.clock import clinic_today  # noqa: E402
from clinic_booking.core.redis_client import get_redis_client  # noqa: E402
from clinic_booking.core.security import create_access_token  # noqa: E402
from clinic_booking.database import build_engine, get_db  # noqa: E402
from clinic_booking.main import app  # noqa: E402
from clinic_booking.models import (  # noqa: E402
    doctor_treatments,
    doctors,
    metadata,
    patients,
    schedules,
    time_slots,
    treatment_types,
)
from clinic_booking.schemas.appointments import AppointmentUpdate  # noqa: E402
from clinic_booking.schemas.auth import Actor, Role  # noqa: E402
from clinic_booking.services.notification_service import NotificationService  # noqa: E402
from clinic_booking.services.reservation_service import ReservationService  # noqa: E402

# Safety check: prevent running tests against the application database
if settings.database_url == TEST_DATABASE_URL:
    print("\n❌ CRITICAL ERROR: Test database URL is same as the application database!")
    print("This would DROP all application data during tests.")
    print("Please set TEST_DATABASE_URL to a separate test database in .env")
    sys.exit(1)

# Use NullPool to avoid event loop issues between tests
test_engine = build_engine(TEST_DATABASE_URL, poolclass=NullPool)

# Create test session factory
TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

requires_row_locks = pytest.mark.skipif(
    not ROW_LOCKS_AVAILABLE,
    reason=f"needs PostgreSQL row locks; TEST_DATABASE_URL is {TEST_DATABASE_URL}",
)


def pytest_terminal_summary(terminalreporter) -> None:
    """Repeat the row-lock warning after the results so it is not lost in the output."""
    if not ROW_LOCKS_AVAILABLE:
        terminalreporter.write_sep(
            "!",
            "row-lock tests SKIPPED: suite ran on SQLite, point TEST_DATABASE_URL at PostgreSQL",
            yellow=True,
        )


PATIENT_LINE_ID = "U-patient-0001"
OTHER_PATIENT_LINE_ID = "U-patient-0002"


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    # Drop tables after test
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)


@pytest.fixture
def redis_mock() -> MagicMock:
    """Stand-in Redis client; cache reads miss and sweep locks are granted."""
    return MagicMock()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    redis_mock: MagicMock,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis_client] = lambda: redis_mock

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def notify_mock():
    """Record outgoing LINE messages instead of sending them."""
    with patch.object(NotificationService, "notify", new=AsyncMock(return_value=True)) as mock:
        yield mock


# Actors


@pytest.fixture
def patient_actor() -> Actor:
    return Actor(id=PATIENT_LINE_ID, role=Role.PATIENT, line_user_id=PATIENT_LINE_ID)


@pytest.fixture
def other_patient_actor() -> Actor:
    return Actor(id=OTHER_PATIENT_LINE_ID, role=Role.PATIENT, line_user_id=OTHER_PATIENT_LINE_ID)


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(id="admin-1", role=Role.ADMIN)


@pytest.fixture
def super_admin_actor() -> Actor:
    return Actor(id="super-1", role=Role.SUPER_ADMIN)


def make_headers(actor: Actor, **claims) -> dict:
    """Bearer headers for an actor."""
    token_data = {"sub": actor.id, "role": actor.role.value, **claims}
    if actor.line_user_id:
        token_data["line_user_id"] = actor.line_user_id
    token = create_access_token(data=token_data, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def patient_headers(patient_actor: Actor) -> dict:
    return make_headers(patient_actor)


@pytest.fixture
def other_patient_headers(other_patient_actor: Actor) -> dict:
    return make_headers(other_patient_actor)


@pytest.fixture
def admin_headers(admin_actor: Actor) -> dict:
    return make_headers(admin_actor)


@pytest.fixture
def super_admin_headers(super_admin_actor: Actor) -> dict:
    return make_headers(super_admin_actor)


@pytest.fixture
def system_headers() -> dict:
    return {"X-System-Secret": settings.system_job_secret}


# Seed data


async def add_schedule(
    db: AsyncSession,
    doctor_id,
    schedule_date: date,
    starts: list[time],
    remaining: list[int] | None = None,
    is_available: bool = True,
) -> SimpleNamespace:
    """Insert a schedule with one 30-minute slot per start time."""
    result = await db.execute(
        insert(schedules)
        .values(doctor_id=doctor_id, date=schedule_date, is_available=is_available)
        .returning(schedules.c.id)
    )
    schedule_id = result.scalar_one()

    slot_ids = []
    for index, start in enumerate(starts):
        end = time(start.hour + (start.minute + 30) // 60, (start.minute + 30) % 60)
        left = remaining[index] if remaining else 30
        result = await db.execute(
            insert(time_slots)
            .values(
                schedule_id=schedule_id,
                start_time=start,
                end_time=end,
                total_minutes=30,
                remaining_minutes=left,
            )
            .returning(time_slots.c.id)
        )
        slot_ids.append(result.scalar_one())

    await db.commit()
    return SimpleNamespace(id=schedule_id, date=schedule_date, slot_ids=slot_ids)


async def add_patient(
    db: AsyncSession,
    name: str,
    line_user_id: str | None,
    no_show_count: int = 0,
    is_blacklisted: bool = False,
):
    result = await db.execute(
        insert(patients)
        .values(
            name=name,
            line_user_id=line_user_id,
            no_show_count=no_show_count,
            is_blacklisted=is_blacklisted,
        )
        .returning(patients.c.id)
    )
    await db.commit()
    return result.scalar_one()


@pytest_asyncio.fixture
async def clinic(db_session: AsyncSession) -> SimpleNamespace:
    """
    One doctor with a 10- and a 20-minute treatment, a schedule two days
    ahead with three slots, and two patients.
    """
    result = await db_session.execute(
        insert(doctors).values(name="Dr. Lin").returning(doctors.c.id)
    )
    doctor_id = result.scalar_one()

    result = await db_session.execute(
        insert(treatment_types)
        .values(name="Acupuncture", duration_minutes=10, sort_order=1)
        .returning(treatment_types.c.id)
    )
    short_treatment_id = result.scalar_one()

    result = await db_session.execute(
        insert(treatment_types)
        .values(name="Massage", duration_minutes=20, sort_order=2)
        .returning(treatment_types.c.id)
    )
    long_treatment_id = result.scalar_one()
    await db_session.commit()

    schedule = await add_schedule(
        db_session,
        doctor_id,
        clinic_today() + timedelta(days=2),
        [time(9, 0), time(9, 30), time(10, 0)],
    )
    patient_id = await add_patient(db_session, "Chen Mei", PATIENT_LINE_ID)
    other_patient_id = await add_patient(db_session, "Wang Hao", OTHER_PATIENT_LINE_ID)

    return SimpleNamespace(
        doctor_id=doctor_id,
        short_treatment_id=short_treatment_id,
        long_treatment_id=long_treatment_id,
        schedule=schedule,
        slot_ids=schedule.slot_ids,
        patient_id=patient_id,
        other_patient_id=other_patient_id,
    )


async def offer_only(db: AsyncSession, doctor_id, treatment_type_id) -> None:
    """Restrict a doctor to a single treatment."""
    await db.execute(
        insert(doctor_treatments).values(doctor_id=doctor_id, treatment_type_id=treatment_type_id)
    )
    await db.commit()


async def set_remaining(db: AsyncSession, slot_id, remaining: int) -> None:
    await db.execute(
        update(time_slots).where(time_slots.c.id == slot_id).values(remaining_minutes=remaining)
    )
    await db.commit()


async def remaining_of(db: AsyncSession, slot_id) -> int:
    result = await db.execute(
        select(time_slots.c.remaining_minutes).where(time_slots.c.id == slot_id)
    )
    return result.scalar_one()


# Interleaving


async def modify_in_own_session(appointment_id, actor: Actor, **changes):
    """Modify an appointment through a separate session and commit it."""
    async with TestSessionLocal() as session:
        return await ReservationService(session).modify_appointment(
            appointment_id, AppointmentUpdate(**changes), actor
        )


def interleave(target, method_name: str, action) -> None:
    """
    Run ``action`` right before the next call of ``target.method_name``.

    Lets a test commit a competing change after a service has read its
    snapshot but before it takes the corresponding row lock.
    """
    original = getattr(target, method_name)
    pending = [action]

    async def run_action_first(*args, **kwargs):
        if pending:
            await pending.pop()()
        return await original(*args, **kwargs)

    setattr(target, method_name, run_action_first)
