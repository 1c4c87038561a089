import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="custom-rooms-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP_DIR}/default.db")
os.environ.setdefault("EVIDENCE_DIR", os.path.join(_TMP_DIR, "uploads"))
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlmodel import select

from app.config import Settings
from app.database import build_engine, build_session_factory, create_tables, get_session
from app.dependencies import get_storage
from app.enums import RejectRefundPolicy, RoomMaker
from app.events.manager import ConnectionManager
from app.main import app as fastapi_app
from app.models import User
from app.schemas.custom_room import CustomRoomCreate
from app.security import create_access_token
from app.services.arbitration_service import ArbitrationService
from app.services.custom_room_service import CustomRoomService
from app.services.notification_service import NotificationService
from app.services.rate_limit import mutation_limiter
from app.services.storage import EvidenceFile


class FakeEvidenceStorage:
    def __init__(self) -> None:
        self.uploads: list[tuple[str, str]] = []

    async def upload(self, evidence: EvidenceFile, *, folder: str) -> str:
        url = f"https://evidence.test/{folder}/{len(self.uploads) + 1}-{evidence.filename}"
        self.uploads.append((folder, url))
        return url


def screenshot(name: str = "result.png") -> EvidenceFile:
    return EvidenceFile(filename=name, content=b"\x89PNG fake image", content_type="image/png")


def room_payload(**overrides) -> CustomRoomCreate:
    values = {
        "entry_fee": Decimal("100"),
        "odds": Decimal("1.8"),
        "rounds": 7,
        "room_maker": RoomMaker.ME,
    }
    values.update(overrides)
    return CustomRoomCreate(**values)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest_asyncio.fixture
async def engine(tmp_path):
    db_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(db_engine)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        room_write_retry_delay_seconds=0.0,
        reject_refund_policy=RejectRefundPolicy.REFUND_BOTH,
    )


@pytest.fixture
def storage():
    return FakeEvidenceStorage()


@pytest.fixture
def notifier(session_factory):
    return NotificationService(session_factory, connections=ConnectionManager())


@pytest.fixture
def make_user(session_factory):
    counter = {"value": 0}

    async def _make_user(balance="1000", *, is_admin=False, username=None) -> User:
        counter["value"] += 1
        name = username or f"player{counter['value']}"
        async with session_factory() as db_session:
            user = User(
                email=f"{name}@example.com",
                username=name,
                balance=Decimal(balance),
                is_admin=is_admin,
            )
            db_session.add(user)
            await db_session.commit()
            await db_session.refresh(user)
            return user

    return _make_user


@pytest.fixture
def balance_of(session_factory):
    async def _balance_of(user: User) -> Decimal:
        async with session_factory() as db_session:
            result = await db_session.execute(select(User.balance).where(User.id == user.id))
            return Decimal(result.scalar_one())

    return _balance_of


@pytest.fixture
def room_service(session, storage, notifier, settings):
    return CustomRoomService(session, storage=storage, notifier=notifier, settings=settings)


@pytest.fixture
def arbitration(session, notifier, settings):
    return ArbitrationService(session, notifier=notifier, settings=settings)


@pytest_asyncio.fixture
async def client(session_factory, storage):
    async def override_session():
        async with session_factory() as db_session:
            yield db_session

    fastapi_app.dependency_overrides[get_session] = override_session
    fastapi_app.dependency_overrides[get_storage] = lambda: storage
    mutation_limiter.reset()
    transport = httpx.ASGITransport(app=fastapi_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    fastapi_app.dependency_overrides.clear()
    mutation_limiter.reset()
