"""Pytest configuration and fixtures for the onboarding tests.

Every upstream (platform backend, auth provider, OneMap, Google geocoding,
blob storage) is replaced by one in-process FakeUpstream behind
httpx.MockTransport, so no test touches the network.
"""

import asyncio
import json
import uuid
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient

from localoco.main import app
from localoco.onboarding.session import OnboardingSession
from localoco.onboarding.store import SessionStore
from localoco.onboarding.wizard import OnboardingServices, OnboardingWizard, build_services
from localoco.routers.onboarding import get_store
from localoco.schemas.onboarding import PaymentOption, PendingImage, PriceTier

BLOB_HOST = "localoco.blob.core.windows.net"
KNOWN_ADDRESS = "1 ORCHARD ROAD ORCHARD CENTRAL SINGAPORE 238823"
OTHER_ADDRESS = "10 ANSON ROAD INTERNATIONAL PLAZA SINGAPORE 079903"


class FakeUpstream:
    """Records every outbound request and answers like the real services."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.addresses = {"238823": KNOWN_ADDRESS, "079903": OTHER_ADDRESS}
        self.coordinates = {KNOWN_ADDRESS: (1.3007, 103.8394), OTHER_ADDRESS: (1.2755, 103.8457)}
        self.search_delays: dict[str, float] = {}
        self.raw_search_results: dict[str, list] = {}
        self.taken_emails: set[str] = set()
        self.taken_uens: set[str] = set()
        self.checks_fail = False
        self.token_fails = False
        self.geocode_fails = False
        self.signup_error: str | None = None
        self.user_id = "user-123"
        self.ticket_fails = False
        self.transfer_fails_for: set[str] = set()
        self.failing_businesses: set[str] = set()
        self.valid_referrals = {"FRIEND10"}

    # ── Inspection helpers ──────────────────────────────────

    def calls(self, path: str, method: str | None = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.path == path and (method is None or r.method == method)
        ]

    def uploads(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == BLOB_HOST]

    def registrations(self) -> list[dict]:
        return [json.loads(r.content) for r in self.calls("/api/register-business")]

    # ── Transport ───────────────────────────────────────────

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        params = request.url.params

        if request.url.host == BLOB_HOST:
            name = path.rsplit("/", 1)[-1]
            if any(name.endswith(ext) for ext in self.transfer_fails_for):
                return httpx.Response(403, text="AuthenticationFailed")
            return httpx.Response(201)

        if path == "/api/auth/post/getToken":
            if self.token_fails:
                return httpx.Response(401, json={"error": "bad credentials"})
            return httpx.Response(200, json={"access_token": "onemap-token"})

        if path == "/api/common/elastic/search":
            assert request.headers.get("Authorization") == "onemap-token"
            code = params.get("searchVal")
            await asyncio.sleep(self.search_delays.get(code, 0))
            if code in self.raw_search_results:
                return httpx.Response(200, json={"found": 1, "results": self.raw_search_results[code]})
            address = self.addresses.get(code)
            results = [{"ADDRESS": address, "POSTAL": code}] if address else []
            return httpx.Response(200, json={"found": len(results), "results": results})

        if path == "/maps/api/geocode/json":
            address = params.get("address")
            if self.geocode_fails:
                return httpx.Response(500)
            if address not in self.coordinates:
                return httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})
            lat, lng = self.coordinates[address]
            return httpx.Response(200, json={
                "status": "OK",
                "results": [{"geometry": {"location": {"lat": lat, "lng": lng}}}],
            })

        if path == "/api/check-email":
            if self.checks_fail:
                return httpx.Response(503)
            return httpx.Response(200, json={"available": params.get("email") not in self.taken_emails})

        if path == "/api/check-uen":
            if self.checks_fail:
                return httpx.Response(503)
            return httpx.Response(200, json={"available": params.get("uen") not in self.taken_uens})

        if path == "/api/url-generator":
            if self.ticket_fails:
                return httpx.Response(500, json={"message": "storage unavailable"})
            ext = params.get("filename", "bin").rsplit(".", 1)[-1]
            blob_name = f"{uuid.uuid4()}.{ext}"
            return httpx.Response(200, json={
                "uploadUrl": f"https://{BLOB_HOST}/images/{blob_name}?sv=2024-05-04&sp=w&sig=abc%3D",
                "blobName": blob_name,
            })

        if path == "/api/register-business":
            body = json.loads(request.content)
            if body.get("businessName") in self.failing_businesses:
                return httpx.Response(500, json={"message": "Failed to register business."})
            return httpx.Response(201, json={"success": True, "message": "Business has been registered"})

        if path == "/api/auth/sign-up/email":
            if self.signup_error:
                return httpx.Response(422, json={"message": self.signup_error})
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "user": {"id": self.user_id, "email": body["email"], "name": body["name"]},
            })

        if path == "/api/referrals/apply":
            body = json.loads(request.content)
            if body.get("referralCode") in self.valid_referrals:
                return httpx.Response(200, json={"success": True, "message": "Referral applied successfully!"})
            return httpx.Response(400, json={"success": False, "message": "Invalid referral code"})

        return httpx.Response(404)


# ── Upstream + services ──────────────────────────────────────

@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest_asyncio.fixture
async def http(upstream: FakeUpstream) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        yield client


@pytest.fixture
def services(http: httpx.AsyncClient) -> OnboardingServices:
    return build_services(http, lookup_delay=0.01)


@pytest.fixture
def make_wizard(services: OnboardingServices):
    def _make(has_business: bool = False, referral_code: str | None = None) -> OnboardingWizard:
        session = OnboardingSession(has_business=has_business, referral_code=referral_code)
        return OnboardingWizard(session, services)
    return _make


# ── API client ───────────────────────────────────────────────

@pytest.fixture
def store(services: OnboardingServices) -> SessionStore:
    return SessionStore(services)


@pytest_asyncio.fixture
async def client(store: SessionStore) -> AsyncGenerator[AsyncClient, None]:
    """API client with the session store pointed at the fake upstream."""
    app.dependency_overrides[get_store] = lambda: store

    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test data ────────────────────────────────────────────────

VALID_ACCOUNT = {
    "first_name": "Mei",
    "last_name": "Tan",
    "email": "mei@example.com",
    "password": "secret123",
    "password_confirmation": "secret123",
}


def business_fields(name: str = "Kopi Corner", uen: str = "201912345K", **overrides) -> dict:
    """Everything steps 2-5 need, apart from the image."""
    fields = {
        "uen": uen,
        "business_name": name,
        "category": "Food & Beverage",
        "description": "Traditional kopi and kaya toast",
        "address": KNOWN_ADDRESS,
        "postal_code": "238823",
        "latitude": 1.3007,
        "longitude": 103.8394,
        "phone_number": "+6561234567",
        "business_email": f"{uen.lower()}@example.com",
        "price_tier": PriceTier.LOW,
        "payment_options": {PaymentOption.CASH, PaymentOption.PAYNOW},
    }
    fields.update(overrides)
    return fields


def sample_image(filename: str = "storefront.jpg") -> PendingImage:
    return PendingImage(filename=filename, content_type="image/jpeg", data=b"\xff\xd8\xff\xe0fake-jpeg")


async def walk_to_review(wizard: OnboardingWizard) -> None:
    """Advance the current business draft from step 2 to the review step."""
    for _ in range(4):
        result = await wizard.advance()
        assert result.valid, result.message


# ── Test Markers ─────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: API endpoint tests")
    config.addinivalue_line("markers", "integration: Multi-component flows")
