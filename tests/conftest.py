"""pytest fixtures for BeatFoundry backend tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- engine: Function-scoped in-memory SQLite engine with all tables created
- session / session_factory / uow_factory: Database access on that engine
- settings: Test settings with a temporary media root
- upstream: Fake upstream HTTP services (httpx.MockTransport)
- app / client: Wired FastAPI application and an httpx client for it
"""

import os

# Skip required-credential validation before the app module loads Settings
os.environ["APP_ENV"] = "test"

from typing import Any, AsyncGenerator, Callable, Union  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from beatfoundry import models  # noqa: E402, F401
from beatfoundry.app import create_app, wire_services  # noqa: E402
from beatfoundry.core.config import Settings  # noqa: E402
from beatfoundry.uow import create_uow_factory  # noqa: E402

SUNO_BASE = "/api/v1"
KINOS_KIN = "/v2/blueprints/beatfoundry/kins"


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Provide a fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for repository-level tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Test settings: fast polling, local media root, fake credentials."""
    return Settings(  # type: ignore[call-arg]
        APP_ENV="test",
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        PUBLIC_BASE_URL="http://beatfoundry.test",
        SUNO_API_KEY="test-suno-key",
        KINOS_API_KEY="test-kinos-key",
        JOB_POLL_INTERVAL_SECONDS=0.01,
        RESUME_PENDING_JOBS=False,
        MEDIA_ROOT=str(tmp_path / "public"),
        MEDIA_URL_PREFIX="/media",
    )


ResponseSpec = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class UpstreamStub:
    """Routes outbound HTTP by request path to canned responses.

    A route registered with several responses returns them in order and then
    keeps returning the last one. Exceptions are raised from the transport.
    Unregistered paths answer 404.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[ResponseSpec]] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, *responses: ResponseSpec) -> None:
        self.routes[(method.upper(), path)] = list(responses)

    def json(self, method: str, path: str, *bodies: Any, status_code: int = 200) -> None:
        self.on(method, path, *(httpx.Response(status_code, json=body) for body in bodies))

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responses = self.routes.get((request.method, request.url.path))
        if not responses:
            return httpx.Response(404, json={"error": "not found"})
        spec = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(spec, Exception):
            raise spec
        if not isinstance(spec, httpx.Response):
            return spec(request)
        # Fresh copy so a sticky route can be served more than once
        return httpx.Response(spec.status_code, headers=spec.headers, content=spec.content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def upstream() -> UpstreamStub:
    return UpstreamStub()


@pytest.fixture
def app(settings, session_factory, uow_factory, upstream):
    """Application wired against the test database and the upstream stub.

    ASGITransport does not run the lifespan, so services are wired here.
    """
    application = create_app(settings)
    application.state.session_factory = session_factory
    wire_services(application, settings, uow_factory, transport=upstream.transport)
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client for the application under test."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await app.state.job_tracker.shutdown()


def status_envelope(status: str, items: list[dict] | None = None, task_id: str = "J1") -> dict:
    """Status query response in the shape the synthesis service returns."""
    response: dict[str, Any] = {"taskId": task_id, "status": status}
    if items is not None:
        response["sunoData"] = items
    return {"code": 200, "msg": "success", "data": {"taskId": task_id, "response": response}}
