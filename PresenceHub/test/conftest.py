"""
Test configuration and fixtures for PresenceHub server tests.

Provides:
- Test configuration
- JWT token generation
- An in-memory store seeded with users
- A live gateway on an ephemeral port plus client helpers
"""

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generator, List, Optional

import jwt
import pytest
import pytest_asyncio
from websockets.asyncio.client import ClientConnection, connect

from PresenceHub.core.server.auth import JWTAuthenticator
from PresenceHub.core.server.gateway import GatewayServer
from PresenceHub.core.server.routing import room_for
from PresenceHub.core.server.storage_sqlite import SQLiteMessageStore


@dataclass
class TestConfig:
    """Configuration for server tests."""
    __test__ = False

    host: str = "127.0.0.1"
    origin: str = "http://localhost:3000"
    secret: str = "presencehub-test-secret-0123456789abcdef"
    algorithm: str = "HS256"
    timeout: float = 2.0
    handshake_timeout: float = 1.0
    quiet_window: float = 0.3

    def ws_url(self, port: int, path: str = "/ws") -> str:
        return f"ws://{self.host}:{port}{path}"


TEST_CONFIG = TestConfig()

TEST_USERS: List[Dict[str, Any]] = [
    {"user_id": 1, "email": "admin@example.com", "full_name": "Ada Admin", "role": "admin"},
    {"user_id": 2, "email": "bob@example.com", "full_name": "Bob Baker", "role": "employee"},
    {"user_id": 3, "email": "cara@example.com", "full_name": "Cara Cole", "role": "employee"},
    {"user_id": 4, "email": "dan@example.com", "full_name": "Dan Diaz", "role": "employee"},
]


class TestDataGenerator:
    """Generate test data for server tests."""
    __test__ = False

    @staticmethod
    def generate_jwt_token(
        user_id: Any,
        email: Optional[str] = None,
        role: str = "employee",
        secret: str = None,
        expires_in: Optional[int] = 3600,
        **extra: Any
    ) -> str:
        """Generate a test JWT token carrying userId/email/role claims."""
        payload = {
            "userId": user_id,
            "email": email if email is not None else f"user{user_id}@example.com",
            "role": role,
            "iat": int(time.time()),
        }
        if expires_in is not None:
            payload["exp"] = int(time.time()) + expires_in
        payload.update(extra)
        return jwt.encode(payload, secret or TEST_CONFIG.secret, algorithm=TEST_CONFIG.algorithm)

    @staticmethod
    def token_for(user_id: int) -> str:
        """Token for one of the seeded TEST_USERS."""
        user = next(u for u in TEST_USERS if u["user_id"] == user_id)
        return TestDataGenerator.generate_jwt_token(user_id, user["email"], user["role"])


class FakeConnection:
    """In-memory TransportConnection that records decoded frames."""

    def __init__(self, conn_id: str = "fake", open_: bool = True, accept: bool = True):
        self.conn_id = conn_id
        self.sent: List[Dict[str, Any]] = []
        self._open = open_
        self._accept = accept

    async def send(self, message: str) -> bool:
        if not self._accept:
            return False
        self.sent.append(json.loads(message))
        return True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self._open = False

    def is_open(self) -> bool:
        return self._open

    def mark_closed(self) -> bool:
        was_open = self._open
        self._open = False
        return was_open

    def events(self, name: str) -> List[Any]:
        return [f["data"] for f in self.sent if f["event"] == name]


class StalledConnection(FakeConnection):
    """Connection whose peer stopped reading: ``send`` blocks until released."""

    def __init__(self, conn_id: str = "stalled"):
        super().__init__(conn_id)
        self._released = asyncio.Event()

    async def send(self, message: str) -> bool:
        await self._released.wait()
        return await super().send(message)

    def release(self) -> None:
        self._released.set()


async def wait_until(predicate: Callable[[], bool], timeout: float = TEST_CONFIG.timeout) -> None:
    """Poll until ``predicate`` holds or fail the test."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.01)


async def recv_event(ws: ClientConnection, name: str, timeout: float = TEST_CONFIG.timeout) -> Any:
    """Receive frames until one named ``name`` arrives and return its data."""
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            pytest.fail(f"no {name!r} event within {timeout}s")
        try:
            raw = await asyncio.wait_for(ws.recv(), timeout=remaining)
        except asyncio.TimeoutError:
            pytest.fail(f"no {name!r} event within {timeout}s")
        frame = json.loads(raw)
        if frame.get("event") == name:
            return frame.get("data")


async def collect_events(ws: ClientConnection, window: float = TEST_CONFIG.quiet_window) -> List[Dict[str, Any]]:
    """Collect every frame received during ``window`` seconds."""
    frames = []
    deadline = time.monotonic() + window
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return frames
        try:
            raw = await asyncio.wait_for(ws.recv(), timeout=remaining)
        except asyncio.TimeoutError:
            return frames
        frames.append(json.loads(raw))


async def send_event(ws: ClientConnection, name: str, data: Any = None) -> None:
    await ws.send(json.dumps({"event": name, "data": data}))


async def open_socket(gateway: GatewayServer, path: str = "/ws", origin: str = TEST_CONFIG.origin) -> ClientConnection:
    """Open a raw client connection without running the handshake."""
    return await connect(TEST_CONFIG.ws_url(gateway.port, path), origin=origin)


async def connect_as(gateway: GatewayServer, user_id: int, token: str = None) -> ClientConnection:
    """
    Connect and authenticate as ``user_id``.

    Returns once the connection has joined its user room, so pushes issued
    afterwards are guaranteed to reach it.
    """
    token = token or TestDataGenerator.token_for(user_id)
    room = room_for(user_id)
    members_before = len(gateway.rooms.members(room))

    ws = await open_socket(gateway)
    await ws.send(json.dumps({"auth": {"token": token}}))
    connected = await recv_event(ws, "connected")
    assert connected == {"userId": user_id}
    await wait_until(lambda: len(gateway.rooms.members(room)) > members_before)
    return ws


@pytest.fixture(scope="session")
def test_config() -> TestConfig:
    """Provide test configuration."""
    return TEST_CONFIG


@pytest.fixture(scope="session")
def test_data_generator() -> TestDataGenerator:
    """Provide test data generator."""
    return TestDataGenerator()


@pytest.fixture
def authenticator(test_config: TestConfig) -> JWTAuthenticator:
    return JWTAuthenticator(secret=test_config.secret, algorithm=test_config.algorithm)


@pytest.fixture
def store() -> Generator[SQLiteMessageStore, None, None]:
    """In-memory store seeded with TEST_USERS."""
    db = SQLiteMessageStore(":memory:")
    for user in TEST_USERS:
        db.add_user(**user)
    yield db
    db.close()


@pytest_asyncio.fixture
async def gateway(authenticator: JWTAuthenticator, store: SQLiteMessageStore, test_config: TestConfig):
    """Run a gateway on an ephemeral port for the duration of a test."""
    server = GatewayServer(
        authenticator=authenticator,
        store=store,
        allowed_origins=[test_config.origin],
        handshake_timeout=test_config.handshake_timeout,
    )
    async with server.run(test_config.host, 0):
        yield server


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
