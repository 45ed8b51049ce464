import uuid
from collections.abc import AsyncGenerator, Iterator
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from diradmin.core.auth import create_jwt
from diradmin.core.config import settings
from diradmin.models import Base, Organization, SystemRole, User

# Fixed operator ids (consistent across tests for predictable auth)
GLOBAL_ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
ORG_ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
PLAIN_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000003")
ORG_ID = uuid.UUID("00000000-0000-0000-0000-0000000000a1")
OTHER_ORG_ID = uuid.UUID("00000000-0000-0000-0000-0000000000a2")

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow


def create_test_jwt(
    user_id: uuid.UUID = GLOBAL_ADMIN_ID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT for test authentication.

    Args:
        user_id: User UUID to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        expires_delta: Time until expiration. Defaults to 1 hour.

    Returns:
        Encoded JWT string.
    """
    return create_jwt(user_id=str(user_id), secret=secret, expires_delta=expires_delta)


async def make_user(
    db: AsyncSession,
    email: str,
    *,
    role: SystemRole = SystemRole.USER,
    organization_id: uuid.UUID | None = None,
    user_id: uuid.UUID | None = None,
    **fields,
) -> User:
    """Insert and commit a user row."""
    user = User(
        id=user_id or uuid.uuid4(),
        email=email,
        role=role.value,
        organization_id=organization_id,
        password_hash="not-a-real-hash",  # nosec B106
        **fields,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite engine; cleanup steps need independent connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'diradmin.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


# =============================================================================
# Directory fixtures
# =============================================================================


@pytest_asyncio.fixture
async def organization(db_session: AsyncSession) -> Organization:
    org = Organization(id=ORG_ID, name="Acme", code="ACME")
    db_session.add(org)
    await db_session.commit()
    return org


@pytest_asyncio.fixture
async def other_organization(db_session: AsyncSession) -> Organization:
    org = Organization(id=OTHER_ORG_ID, name="Globex", code="GLOBEX")
    db_session.add(org)
    await db_session.commit()
    return org


@pytest_asyncio.fixture
async def global_admin(db_session: AsyncSession) -> User:
    return await make_user(
        db_session, "root@example.com", role=SystemRole.ADMIN, user_id=GLOBAL_ADMIN_ID
    )


@pytest_asyncio.fixture
async def org_admin(db_session: AsyncSession, organization: Organization) -> User:
    return await make_user(
        db_session,
        "lead@acme.example.com",
        role=SystemRole.ORG_ADMIN,
        organization_id=organization.id,
        user_id=ORG_ADMIN_ID,
    )


# =============================================================================
# API clients
# =============================================================================


@pytest.fixture(autouse=True)
def test_settings() -> Iterator[None]:
    """Test secret and cheap bcrypt rounds."""
    original_secret = settings.auth_secret
    original_rounds = settings.bcrypt_rounds
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    settings.bcrypt_rounds = 4
    yield
    settings.auth_secret = original_secret
    settings.bcrypt_rounds = original_rounds


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Yields:
        None (autouse fixture).
    """
    from diradmin.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    limiter.enabled = original_enabled


@pytest_asyncio.fixture
async def api_client_for(session_factory):
    """Factory yielding an authenticated AsyncClient for a given user id.

    Overrides get_db and get_session_factory so requests and independent
    units of work share the test database.
    """
    from diradmin.core.database import get_db, get_session_factory
    from diradmin.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    clients: list[AsyncClient] = []

    def _build(user_id: uuid.UUID | None) -> AsyncClient:
        cookies = {}
        if user_id is not None:
            cookies[settings.auth_cookie_name] = create_test_jwt(user_id)
        client = AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies=cookies,
        )
        clients.append(client)
        return client

    yield _build

    for client in clients:
        await client.aclose()
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_api(api_client_for, global_admin) -> AsyncClient:  # noqa: ARG001
    """HTTP client authenticated as the global administrator."""
    return api_client_for(GLOBAL_ADMIN_ID)


@pytest_asyncio.fixture
async def org_api(api_client_for, org_admin) -> AsyncClient:  # noqa: ARG001
    """HTTP client authenticated as the organization administrator."""
    return api_client_for(ORG_ADMIN_ID)
