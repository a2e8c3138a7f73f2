import asyncio
import logging
from sqlalchemy import select
from app.database import AsyncSessionLocal
from app.models.user import User
from app.models.enums import Role
from app.auth.security import get_password_hash
from app.services.activity_service import ActivityService
from app.services.attendance_settings_service import AttendanceSettingsService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

USERS = [
    {
        "email": "admin@hrms.com",
        "first_name": "System",
        "last_name": "Administrator",
        "role": Role.ADMIN,
        "password": "HrmsPass123!",
    },
    {
        "email": "hr.maria@hrms.com",
        "first_name": "Maria",
        "last_name": "Lopez",
        "role": Role.HR,
        "password": "HrmsPass123!",
    },
    {
        "email": "jane.doe@hrms.com",
        "first_name": "Jane",
        "last_name": "Doe",
        "role": Role.EMPLOYEE,
        "password": "HrmsPass123!",
    },
    {
        "email": "sam.lee@hrms.com",
        "first_name": "Sam",
        "last_name": "Lee",
        "role": Role.TEAM_LEAD,
        "password": "HrmsPass123!",
    },
]

async def seed_data():
    async with AsyncSessionLocal() as session:
        admin = None
        for user_data in USERS:
            stmt = select(User).where(User.email == user_data["email"])
            result = await session.execute(stmt)
            user = result.scalar_one_or_none()

            if not user:
                user = User(
                    email=user_data["email"],
                    first_name=user_data["first_name"],
                    last_name=user_data["last_name"],
                    hashed_password=get_password_hash(user_data["password"]),
                    role=user_data["role"],
                    is_active=True,
                )
                session.add(user)
                await session.flush()
                logger.info("Created user: %s", user_data["email"])
                if admin is not None:
                    await ActivityService.log_employee_added(session, admin.id, user.id, user.full_name)
            else:
                logger.info("User already exists: %s", user_data["email"])

            if user.role == Role.ADMIN and admin is None:
                admin = user

        await session.commit()
        await AttendanceSettingsService.get_or_create(session)
    logger.info("Seeding complete.")

if __name__ == "__main__":
    asyncio.run(seed_data())
