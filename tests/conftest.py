from __future__ import annotations

import sys
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from fotocall.api.deps import get_auth_provider, get_extraction_gateway  # noqa: E402
from fotocall.core.auth import AuthTokens, Identity, InvalidCredentialsError  # noqa: E402
from fotocall.core.config import Settings  # noqa: E402
from fotocall.core.db import build_engine, build_session_factory  # noqa: E402
from fotocall.main import create_app  # noqa: E402
from fotocall.models import Base  # noqa: E402
from fotocall.schemas import CandidateContact  # noqa: E402
from fotocall.services.errors import ExtractionFailure  # noqa: E402
from fotocall.services.extraction import ImagePayload  # noqa: E402


class FakeExtractor:
    """Answers each image by its raw bytes: a candidate list or an exception."""

    def __init__(self, results: dict[bytes, list[dict] | Exception] | None = None) -> None:
        self.results = results or {}
        self.calls: list[ImagePayload] = []

    async def extract(self, image: ImagePayload) -> list[CandidateContact]:
        self.calls.append(image)
        result = self.results.get(image.data, ExtractionFailure())
        if isinstance(result, Exception):
            raise result
        return [CandidateContact.model_validate(item) for item in result]


class FakeIdentityProvider:
    """In-memory stand-in for the hosted identity provider."""

    def __init__(self) -> None:
        self.users: dict[str, tuple[str, Identity]] = {}
        self.tokens: dict[str, Identity] = {}
        self.signed_out: list[str] = []

    def add_user(self, email: str, password: str, user_id: str) -> Identity:
        identity = Identity(user_id=user_id, email=email)
        self.users[email] = (password, identity)
        return identity

    def issue_token(self, identity: Identity) -> str:
        token = f"token-{identity.user_id}-{len(self.tokens)}"
        self.tokens[token] = identity
        return token

    async def sign_up(self, email: str, password: str) -> AuthTokens | None:
        if email in self.users:
            raise InvalidCredentialsError("User already registered")
        identity = self.add_user(email, password, f"user-{len(self.users) + 1}")
        return AuthTokens(access_token=self.issue_token(identity), identity=identity, expires_in=3600)

    async def sign_in(self, email: str, password: str) -> AuthTokens:
        stored = self.users.get(email)
        if stored is None or stored[0] != password:
            raise InvalidCredentialsError("Invalid email or password")
        identity = stored[1]
        return AuthTokens(
            access_token=self.issue_token(identity),
            identity=identity,
            refresh_token="refresh",
            expires_in=3600,
        )

    async def get_identity(self, access_token: str) -> Identity | None:
        return self.tokens.get(access_token)

    async def sign_out(self, access_token: str) -> None:
        self.tokens.pop(access_token, None)
        self.signed_out.append(access_token)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture()
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture()
def local_settings(tmp_path: Path) -> Settings:
    return Settings(storage_backend="local", local_store_path=str(tmp_path / "contacts.json"))


@pytest.fixture()
def remote_settings(tmp_path: Path) -> Settings:
    return Settings(
        storage_backend="remote",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'remote.db'}",
        auth_url="http://auth.test",
        auth_api_key="anon-key",
    )


def _client_for(app: FastAPI) -> Iterator[TestClient]:
    # The context manager runs the lifespan, which builds the stores.
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def local_app(local_settings: Settings, extractor: FakeExtractor) -> FastAPI:
    app = create_app(local_settings)
    app.dependency_overrides[get_extraction_gateway] = lambda: extractor
    return app


@pytest.fixture()
def local_client(local_app: FastAPI) -> Iterator[TestClient]:
    yield from _client_for(local_app)


@pytest.fixture()
def remote_app(
    remote_settings: Settings,
    extractor: FakeExtractor,
    identity_provider: FakeIdentityProvider,
) -> FastAPI:
    app = create_app(remote_settings)
    app.dependency_overrides[get_extraction_gateway] = lambda: extractor
    app.dependency_overrides[get_auth_provider] = lambda: identity_provider
    return app


@pytest.fixture()
def remote_client(remote_app: FastAPI) -> Iterator[TestClient]:
    yield from _client_for(remote_app)


@pytest.fixture()
async def session_factory(remote_settings: Settings) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = build_engine(remote_settings)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()
