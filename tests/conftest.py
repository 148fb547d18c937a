import itertools
import os
import tempfile
import time
from datetime import datetime, timedelta, timezone

import pytest

TEST_ROOT = tempfile.mkdtemp(prefix="unisphere-tests-")

# settings are read at import time, so the environment goes first
os.environ["APP_ENV"] = "development"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(TEST_ROOT, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key-for-unisphere"
os.environ["AUTO_CREATE_TABLES"] = "true"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["STORAGE_PATH"] = os.path.join(TEST_ROOT, "uploads")
os.environ["PUBLIC_BASE_URL"] = "http://testserver/uploads"
os.environ["CHAT_FILE_MAX_BYTES"] = str(2 * 1024 * 1024)

from fastapi.testclient import TestClient  # noqa: E402

from unisphere.core.security import hash_password  # noqa: E402
from unisphere.database import Base, async_session_maker, engine  # noqa: E402
from unisphere.main import app  # noqa: E402
from unisphere.models.chat_message import ChatMessage, MessageType  # noqa: E402
from unisphere.models.community import Community, CommunityParticipant  # noqa: E402
from unisphere.models.refresh_token import RefreshToken  # noqa: E402
from unisphere.models.user import Role, User  # noqa: E402

PASSWORD = "Aa12abcd"


async def reset_database():
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(interval)


def ws_url(community_id, token: str | None = None) -> str:
    url = f"/api/v1/communities/{community_id}/chat/ws"
    if token:
        url += f"?access_token={token}"
    return url


class Seeder:
    """Creates rows on the application's event loop through the test client portal."""

    def __init__(self, client: TestClient, password_hash: str):
        self.client = client
        self.password_hash = password_hash
        self._counter = itertools.count(1)

    def run(self, fn, *args):
        return self.client.portal.call(fn, *args)

    def user(
        self,
        user_id: int | None = None,
        role: Role = Role.STUDENT,
        email: str | None = None,
        is_active: bool = True,
    ) -> User:
        n = next(self._counter)
        email = email or f"user{user_id or n}@unisphere.test"

        async def _create():
            async with async_session_maker() as db:
                user = User(
                    id=user_id,
                    email=email,
                    hashed_password=self.password_hash,
                    first_name="Test",
                    last_name=f"User{n}",
                    role=role.value,
                    is_active=is_active,
                    is_verified=True,
                )
                db.add(user)
                await db.commit()
                return user

        return self.run(_create)

    def community(self, lead: User, members=(), community_id: int | None = None) -> Community:
        n = next(self._counter)

        async def _create():
            async with async_session_maker() as db:
                community = Community(id=community_id, name=f"Community {n}", abbreviation=f"C{n}", lead_id=lead.id)
                db.add(community)
                await db.flush()
                db.add_all(
                    [CommunityParticipant(community_id=community.id, user_id=u.id) for u in (lead, *members)]
                )
                await db.commit()
                return community

        return self.run(_create)

    def messages(self, community: Community, sender: User, count: int, created_at: datetime | None = None) -> list[int]:
        async def _create():
            async with async_session_maker() as db:
                base = created_at or datetime.now(timezone.utc) - timedelta(hours=1)
                rows = [
                    ChatMessage(
                        community_id=community.id,
                        sender_id=sender.id,
                        message_type=MessageType.TEXT.value,
                        content=f"message {i}",
                        # a fixed created_at makes every row tie on time
                        created_at=base if created_at else base + timedelta(seconds=i),
                    )
                    for i in range(count)
                ]
                db.add_all(rows)
                await db.commit()
                return [row.id for row in rows]

        return self.run(_create)

    def refresh_token(self, user: User, token: str, expires_at: datetime, revoked: bool = False, created_at: datetime | None = None):
        async def _create():
            async with async_session_maker() as db:
                row = RefreshToken(token=token, user_id=user.id, expires_at=expires_at, revoked=revoked)
                if created_at is not None:
                    row.created_at = created_at
                db.add(row)
                await db.commit()
                return row

        return self.run(_create)

    def token(self, user: User) -> str:
        return app.state.jwt.create_access_token(user.id, user.email, user.role)

    def headers(self, user: User) -> dict:
        return {"Authorization": f"Bearer {self.token(user)}"}


@pytest.fixture(scope="session")
def password_hash():
    return hash_password(PASSWORD)


@pytest.fixture
def client():
    with TestClient(app) as c:
        c.portal.call(reset_database)
        yield c


@pytest.fixture
def seed(client, password_hash):
    return Seeder(client, password_hash)
