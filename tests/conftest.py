"""Shared pytest fixtures for testing."""

from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from botpe_core.api.app import AppConfig, create_app
from botpe_core.api.auth import JWTConfig, Role, create_token
from botpe_core.database import DatabaseManager, Organization, OrganizationRepository
from botpe_core.security import TokenEncryptor
from botpe_core.whatsapp import GraphAPIConfig, WhatsAppGraphClient


TEST_JWT_SECRET = "test-jwt-secret"
TEST_ENCRYPTION_KEY = "test-encryption-key"

WABA_ID = "104996122399160"
PHONE_NUMBER_ID = "106540352242922"
ACCESS_TOKEN = "EAAGm0PX4ZCpsBA-test-token"


# =============================================================================
# Graph API Fake
# =============================================================================


class FakeGraphAPI:
    """Scripted Meta Graph API served through ``httpx.MockTransport``."""

    waba_id = WABA_ID
    phone_number_id = PHONE_NUMBER_ID
    access_token = ACCESS_TOKEN

    def __init__(self, api_version: str = "v18.0"):
        self.prefix = f"/{api_version}"
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.set_signup_defaults()

    def set(self, method: str, path: str, status_code: int = 200, json: Any = None):
        self.routes[(method, self.prefix + path)] = (status_code, json)

    def set_signup_defaults(self) -> None:
        self.set("POST", "/oauth/access_token", json={
            "access_token": ACCESS_TOKEN,
            "token_type": "bearer",
        })
        self.set("GET", "/debug_token", json={"data": {
            "app_id": "app-id",
            "is_valid": True,
            "granular_scopes": [
                {"scope": "business_management", "target_ids": ["999"]},
                {"scope": "whatsapp_business_management", "target_ids": [WABA_ID]},
                {"scope": "whatsapp_business_messaging", "target_ids": [WABA_ID]},
            ],
        }})
        self.set("GET", f"/{WABA_ID}", json={
            "id": WABA_ID,
            "name": "Acme Support",
            "timezone_id": "1",
            "message_template_namespace": "ns_acme",
        })
        self.set("GET", f"/{WABA_ID}/phone_numbers", json={"data": [
            {
                "id": PHONE_NUMBER_ID,
                "display_phone_number": "+1 555-010-0200",
                "verified_name": "Acme",
                "code_verification_status": "VERIFIED",
                "quality_rating": "GREEN",
            },
        ]})
        self.set("POST", f"/{WABA_ID}/subscribed_apps", json={"success": True})
        self.set("POST", f"/{PHONE_NUMBER_ID}/messages", json={
            "messaging_product": "whatsapp",
            "contacts": [{"input": "15551234567", "wa_id": "15551234567"}],
            "messages": [{"id": "wamid.HBgLMTU1NTEyMzQ1NjcVAgARGBI"}],
        })

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": {"message": "Unknown path"}})
        status_code, body = route
        return httpx.Response(status_code, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, method: str, path: str) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.path == self.prefix + path
        ]


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[DatabaseManager, None]:
    """Fresh SQLite database per test."""
    db = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'botpe_test.db'}")
    await db.create_all()
    yield db
    await db.drop_all()
    await db.close()


@pytest_asyncio.fixture
async def db_session(database: DatabaseManager) -> AsyncGenerator[AsyncSession, None]:
    """Session the test drives directly; commit or roll back explicitly."""
    async with database.session_factory() as session:
        yield session


async def _create_organization(database: DatabaseManager, name: str) -> Organization:
    async with database.session() as session:
        return await OrganizationRepository(session).create(
            name=name,
            slug=f"{name.lower()}-{uuid4().hex[:8]}",
        )


@pytest_asyncio.fixture
async def organization(database: DatabaseManager) -> Organization:
    return await _create_organization(database, "Acme")


@pytest_asyncio.fixture
async def other_organization(database: DatabaseManager) -> Organization:
    return await _create_organization(database, "Globex")


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def encryptor() -> TokenEncryptor:
    return TokenEncryptor(TEST_ENCRYPTION_KEY)


@pytest.fixture
def fake_graph() -> FakeGraphAPI:
    return FakeGraphAPI()


@pytest_asyncio.fixture
async def graph_client(fake_graph: FakeGraphAPI) -> AsyncGenerator[WhatsAppGraphClient, None]:
    client = WhatsAppGraphClient(
        GraphAPIConfig(app_id="app-id", app_secret="app-secret"),
        transport=fake_graph.transport,
    )
    yield client
    await client.aclose()


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        docs_enabled=False,
        jwt_secret=TEST_JWT_SECRET,
        encryption_key=TEST_ENCRYPTION_KEY,
        log_format="simple",
    )


@pytest_asyncio.fixture
async def app(
    app_config: AppConfig,
    database: DatabaseManager,
    graph_client: WhatsAppGraphClient,
    encryptor: TokenEncryptor,
) -> FastAPI:
    """Create test FastAPI application."""
    return create_app(
        app_config,
        database=database,
        graph_client=graph_client,
        encryptor=encryptor,
    )


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Issue bearer tokens the way the auth provider does."""
    config = JWTConfig(secret_key=TEST_JWT_SECRET)

    def _make(
        organization_id: Optional[str],
        role: Optional[Role] = Role.ADMIN,
        user_id: str = "user-1",
    ) -> str:
        return create_token(user_id, organization_id, config, role=role)

    return _make


@pytest.fixture
def auth_headers(organization: Organization, make_token) -> Dict[str, str]:
    """Admin of ``organization``."""
    return {"Authorization": f"Bearer {make_token(organization.id)}"}


@pytest.fixture
def agent_headers(organization: Organization, make_token) -> Dict[str, str]:
    """Non-admin member of ``organization``."""
    return {"Authorization": f"Bearer {make_token(organization.id, role=Role.AGENT)}"}


@pytest.fixture
def other_org_headers(other_organization: Organization, make_token) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(other_organization.id)}"}
