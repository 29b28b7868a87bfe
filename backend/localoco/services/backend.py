"""HTTP clients for the platform backend and the auth provider.

One shared httpx.AsyncClient serves every outbound call (backend, auth,
OneMap, Google, blob storage) so connections are reused across a session.
"""

import logging
from typing import Optional

import httpx

from localoco.config import settings
from localoco.middleware.exceptions import (
    AccountCreationError,
    BusinessRegistrationError,
    ReferralError,
)
from localoco.schemas.onboarding import Availability

logger = logging.getLogger(__name__)

_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    """Get or create the shared outbound HTTP client."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    return _http_client


async def close_http_client():
    """Close the shared client (call on app shutdown)."""
    global _http_client
    if _http_client:
        await _http_client.aclose()
        _http_client = None


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        return str(body.get("message") or error or f"HTTP {resp.status_code}")
    return f"HTTP {resp.status_code}"


class BackendClient:
    """Uniqueness checks, business registration and referrals."""

    def __init__(self, http: httpx.AsyncClient, base_url: str | None = None):
        self._http = http
        self._base_url = (base_url or settings.backend_base_url).rstrip("/")

    async def check_email(self, email: str) -> Availability:
        return await self._check_available("/api/check-email", {"email": email}, "Email")

    async def check_uen(self, uen: str) -> Availability:
        return await self._check_available("/api/check-uen", {"uen": uen}, "UEN")

    async def _check_available(self, path: str, params: dict, what: str) -> Availability:
        """GET a `{available: bool}` endpoint.

        A failed check returns UNKNOWN instead of raising.
        """
        try:
            resp = await self._http.get(f"{self._base_url}{path}", params=params)
            resp.raise_for_status()
            available = resp.json().get("available")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning("%s availability check failed: %s", what, e)
            return Availability.UNKNOWN

        if available is None:
            logger.warning("%s availability check returned no 'available' flag", what)
            return Availability.UNKNOWN
        return Availability.AVAILABLE if available else Availability.TAKEN

    async def register_business(self, payload: dict) -> dict:
        """POST one business. Raises unless the backend confirms success."""
        try:
            resp = await self._http.post(
                f"{self._base_url}/api/register-business", json=payload
            )
        except httpx.HTTPError as e:
            raise BusinessRegistrationError(f"registration request failed: {e}") from e

        if resp.is_error:
            raise BusinessRegistrationError(_error_message(resp))
        try:
            body = resp.json()
        except ValueError as e:
            raise BusinessRegistrationError("registration returned an unreadable response") from e
        if not body.get("success"):
            raise BusinessRegistrationError(body.get("message") or "registration was not accepted")
        return body

    async def apply_referral(self, user_id: str, referral_code: str) -> str:
        try:
            resp = await self._http.post(
                f"{self._base_url}/api/referrals/apply",
                json={"userId": user_id, "referralCode": referral_code.strip().upper()},
            )
        except httpx.HTTPError as e:
            raise ReferralError(f"Failed to apply referral code: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.is_error or not body.get("success"):
            raise ReferralError(body.get("message") or "Invalid referral code")
        return body.get("message") or "Referral applied successfully!"


class AuthClient:
    """Email sign-up against the auth provider."""

    def __init__(self, http: httpx.AsyncClient, base_url: str | None = None):
        self._http = http
        self._base_url = (base_url or settings.auth_base_url).rstrip("/")

    async def sign_up(self, email: str, password: str, name: str) -> str:
        """Create the account and return the new user's id."""
        try:
            resp = await self._http.post(
                f"{self._base_url}/api/auth/sign-up/email",
                json={"email": email, "password": password, "name": name},
            )
        except httpx.HTTPError as e:
            raise AccountCreationError(str(e)) from e

        if resp.is_error:
            raise AccountCreationError(_error_message(resp))
        try:
            user_id = (resp.json().get("user") or {}).get("id")
        except (ValueError, AttributeError):
            user_id = None
        if not user_id:
            raise AccountCreationError("Registration failed. Please try again.")
        return str(user_id)
