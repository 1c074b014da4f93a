"""
Test configuration and fixtures for GoldLoan backend tests.
"""
import pytest
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport
from fakeredis import FakeAsyncRedis

from app.core.database import Base, get_db, get_redis
from app.core.security import create_access_token, get_password_hash
from app.modules.users.models import User, UserRole
from app.modules.loans.schemas import LoanCreate
from app.modules.loans.services import LoanService
from main import app


# ============================================================
# Database Fixtures
# ============================================================

# Use SQLite for testing (in-memory)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine():
    """Create a fresh in-memory database per test"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for each test"""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def redis():
    """In-process Redis stand-in"""
    fake = FakeAsyncRedis(decode_responses=True)
    yield fake
    await fake.flushall()
    await fake.aclose()


@pytest.fixture
async def client(db_session, redis) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database and Redis overrides"""

    async def override_get_db():
        yield db_session

    async def override_get_redis():
        return redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================
# User Fixtures
# ============================================================

async def create_user(db_session, username: str, role: UserRole) -> User:
    user = User(
        username=username,
        email=f"{username}@goldloan.test",
        hashed_password=get_password_hash("TestPassword123!"),
        first_name=username.capitalize(),
        last_name="Tester",
        role=role,
        is_active=True
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


def headers_for(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def admin_user(db_session):
    return await create_user(db_session, "admin", UserRole.ADMIN)


@pytest.fixture
async def officer_user(db_session):
    return await create_user(db_session, "officer", UserRole.LOAN_OFFICER)


@pytest.fixture
async def employee_user(db_session):
    return await create_user(db_session, "ravi", UserRole.EMPLOYEE)


@pytest.fixture
async def other_employee(db_session):
    return await create_user(db_session, "sita", UserRole.EMPLOYEE)


@pytest.fixture
def admin_headers(admin_user):
    return headers_for(admin_user)


@pytest.fixture
def officer_headers(officer_user):
    return headers_for(officer_user)


@pytest.fixture
def employee_headers(employee_user):
    return headers_for(employee_user)


@pytest.fixture
def other_employee_headers(other_employee):
    return headers_for(other_employee)


# ============================================================
# Loan Fixtures
# ============================================================

def loan_payload(**overrides) -> dict:
    """A valid loan application body"""
    payload = {
        "applicant_name": "Lakshmi Devi",
        "applicant_phone": "9876543210",
        "applicant_email": "lakshmi@example.com",
        "applicant_address": {
            "street": "12 Temple Road",
            "city": "Vijayawada",
            "state": "Andhra Pradesh",
            "zip_code": "520001",
            "country": "India"
        },
        "loan_amount": 50000,
        "net_weight": 20.5,
        "gross_weight": 22,
        "gold_purity": "22K",
        "interest_rate": 12,
        "loan_term": 12,
        "items": [
            {
                "name": "Necklace",
                "item_type": "gold",
                "net_weight": 15.5,
                "gross_weight": 16,
                "purity": "22K",
                "estimated_value": 60000
            },
            {
                "name": "Bangle",
                "net_weight": 5,
                "gross_weight": 6,
                "estimated_value": 20000
            }
        ]
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_loan(db_session, redis):
    """Factory creating loans through the service"""

    async def _make_loan(user: User, **overrides):
        data = LoanCreate(**loan_payload(**overrides))
        return await LoanService(db_session, redis).create_loan(data, user)

    return _make_loan


@pytest.fixture
async def employee_loan(make_loan, employee_user):
    return await make_loan(employee_user)

