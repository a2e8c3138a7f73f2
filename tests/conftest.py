import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-hrms-suite")
os.environ.setdefault("ABSENCE_SCHEDULER_ENABLED", "false")

import pytest
from typing import AsyncGenerator
from zoneinfo import ZoneInfo
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from app.database import Base, get_db
from app.main import app
from app.models.user import User
from app.models.enums import Role
from app.auth.security import create_access_token, get_password_hash
from app.routers.attendance_settings import get_absence_scheduler
from app.services.absence_scheduler import AbsenceMarkingScheduler, ScheduleConfig
from app.services.absence_service import AbsenceService
from app.services.attendance_settings_service import AttendanceSettingsService

TEST_PASSWORD = "password123"


@pytest.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def absence_scheduler(session_factory):
    async def read_schedule():
        async with session_factory() as db:
            settings_row = await AttendanceSettingsService.get(db)
        if settings_row is None:
            return None
        return ScheduleConfig(
            enabled=settings_row.auto_absence_enabled,
            marking_time=settings_row.absence_marking_time,
        )

    async def mark_absences():
        async with session_factory() as db:
            summary = await AbsenceService.mark_absences_for_today(db)
            await db.commit()
        return summary.to_dict()

    scheduler = AbsenceMarkingScheduler(read_schedule, mark_absences, ZoneInfo("America/Chicago"))
    yield scheduler
    await scheduler.shutdown()


@pytest.fixture(scope="function")
async def client(db_session, absence_scheduler) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_absence_scheduler] = lambda: absence_scheduler
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _create_user(
    db_session: AsyncSession,
    email: str,
    role: Role = Role.EMPLOYEE,
    first_name: str = "Test",
    last_name: str = "User",
    is_active: bool = True,
) -> User:
    user = User(
        email=email,
        hashed_password=get_password_hash(TEST_PASSWORD),
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_active=is_active,
    )
    db_session.add(user)
    await db_session.commit()
    return user


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject=user.email)}"}


@pytest.fixture
async def admin_user(db_session) -> User:
    return await _create_user(db_session, "admin@hrms.com", Role.ADMIN, "Admin", "User")


@pytest.fixture
async def hr_user(db_session) -> User:
    return await _create_user(db_session, "hr@hrms.com", Role.HR, "Helen", "Reyes")


@pytest.fixture
async def employee_user(db_session) -> User:
    return await _create_user(db_session, "employee@hrms.com", Role.EMPLOYEE, "Jane", "Doe")


@pytest.fixture
def admin_token_headers(admin_user) -> dict[str, str]:
    return auth_headers(admin_user)


@pytest.fixture
def hr_token_headers(hr_user) -> dict[str, str]:
    return auth_headers(hr_user)


@pytest.fixture
def employee_token_headers(employee_user) -> dict[str, str]:
    return auth_headers(employee_user)


@pytest.fixture
def make_user(db_session):
    async def _make(email: str, role: Role = Role.EMPLOYEE, first_name: str = "Test", last_name: str = "User", is_active: bool = True) -> User:
        return await _create_user(db_session, email, role, first_name, last_name, is_active)
    return _make
