# tests/conftest.py — Shared test fixtures
import os

import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"

from models import Base, User, Project, ProjectCollaborator, UserRole, SubscriptionPlan
from auth import AuthService
from database import build_engine, build_session_factory
from main import create_app
from storage import DatabaseStorage

TEST_PASSWORD = "TestPassword123"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = build_engine(TEST_DB_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = build_session_factory(db_engine)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def storage(db_engine):
    return DatabaseStorage(build_session_factory(db_engine))


@pytest_asyncio.fixture(scope="function")
async def client(storage):
    """HTTP test client around an app wired to the test database"""
    app = create_app(storage)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def make_user(db_session, username, role=UserRole.USER, plan=SubscriptionPlan.FREE, **fields) -> User:
    user = User(
        username=username,
        password_hash=AuthService.hash_password(TEST_PASSWORD),
        email=f"{username}@projecthub.dev",
        role=role,
        plan=plan,
        **fields,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


async def make_project(db_session, owner: User, name="Project", **fields) -> Project:
    project = Project(name=name, user_id=owner.id, **fields)
    db_session.add(project)
    await db_session.commit()
    await db_session.refresh(project)
    return project


async def add_collaborator(db_session, project: Project, user: User, role="member") -> ProjectCollaborator:
    collaboration = ProjectCollaborator(project_id=project.id, user_id=user.id, role=role)
    db_session.add(collaboration)
    await db_session.commit()
    return collaboration


@pytest_asyncio.fixture
async def test_user(db_session):
    """A free-plan user"""
    return await make_user(db_session, "alice", first_name="Alice", last_name="Free")


@pytest_asyncio.fixture
async def pro_user(db_session):
    return await make_user(db_session, "bob", plan=SubscriptionPlan.PRO, first_name="Bob")


@pytest_asyncio.fixture
async def other_user(db_session):
    """A user with no relationship to anyone else's projects"""
    return await make_user(db_session, "carol")


@pytest_asyncio.fixture
async def admin_user(db_session):
    return await make_user(db_session, "admin", role=UserRole.ADMIN, plan=SubscriptionPlan.ENTERPRISE)


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.create_access_token(AuthService.token_claims(user))
    return {"Authorization": f"Bearer {token}"}
