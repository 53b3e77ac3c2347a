"""
SkillTrack - Test Configuration and Fixtures
"""
import os
from typing import AsyncGenerator
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from faker import Faker

# Set testing environment
os.environ['ENVIRONMENT'] = 'testing'
os.environ['DEBUG'] = 'false'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test.db'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['RATE_LIMIT_ENABLED'] = 'false'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['LOG_LEVEL'] = 'WARNING'

from app.main import app
from app.core.database import Base, get_db
from app.models.user import User, UserRole
from app.core.security import get_password_hash, create_access_token
from app.services.query_cache import query_cache

fake = Faker()

TEST_PASSWORD = 'testpassword123'

# Test database setup
TEST_DATABASE_URL = 'sqlite+aiosqlite:///./test.db'
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False
)


@pytest.fixture(autouse=True)
def clear_query_cache():
    """Cached rows must not leak between tests"""
    query_cache.clear()
    query_cache.reset_stats()
    yield
    query_cache.clear()


@pytest.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


async def make_user(
    db_session: AsyncSession,
    role: UserRole,
    **overrides
) -> User:
    """Insert a user with the shared test password"""
    user = User(
        email=overrides.pop('email', fake.unique.email()),
        hashed_password=get_password_hash(TEST_PASSWORD),
        full_name=overrides.pop('full_name', fake.name()),
        role=role,
        is_active=overrides.pop('is_active', True),
        **overrides
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


def headers_for(user: User) -> dict:
    """Bearer headers carrying a fresh access token for the user"""
    token_data = {
        'sub': str(user.id),
        'email': user.email,
        'role': user.role.value
    }
    token = create_access_token(token_data)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def test_user_data() -> dict:
    """Registration payload for a new student"""
    return {
        'email': fake.unique.email(),
        'password': TEST_PASSWORD,
        'full_name': fake.name(),
        'role': 'student',
    }


@pytest.fixture
async def instructor_user(db_session: AsyncSession) -> User:
    """Create an instructor with a cohort code"""
    return await make_user(db_session, UserRole.INSTRUCTOR, instructor_code='TEACH001')


@pytest.fixture
async def test_user(db_session: AsyncSession, instructor_user: User) -> User:
    """Create a student affiliated with the instructor"""
    return await make_user(
        db_session, UserRole.STUDENT, affiliated_instructor_id=instructor_user.id
    )


@pytest.fixture
async def admin_user(db_session: AsyncSession) -> User:
    """Create an admin test user"""
    return await make_user(db_session, UserRole.ADMIN)


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    """Generate authentication headers for the student"""
    return headers_for(test_user)


@pytest.fixture
def instructor_auth_headers(instructor_user: User) -> dict:
    """Generate authentication headers for the instructor"""
    return headers_for(instructor_user)


@pytest.fixture
def admin_auth_headers(admin_user: User) -> dict:
    """Generate authentication headers for admin user"""
    return headers_for(admin_user)


@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Create extra users inside a test: await user_factory(UserRole.STUDENT, ...)"""
    async def _make(role: UserRole = UserRole.STUDENT, **overrides) -> User:
        return await make_user(db_session, role, **overrides)
    return _make


@pytest.fixture
def token_headers():
    """Build bearer headers for any user created in a test"""
    return headers_for
