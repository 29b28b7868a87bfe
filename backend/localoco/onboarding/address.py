"""Postal code -> street address -> coordinates.

Pipeline (each stage either returns a value or raises a named error):

  1. local check        6 ASCII digits, else InvalidPostalCodeError (no I/O)
  2. OneMap token       POST credentials -> access_token     (AddressLookupError)
  3. OneMap search      GET with token -> first ADDRESS      (AddressNotFoundError)
  4. Google geocode     GET address -> lat/lng               (never fatal)

Stage 4 failing leaves the coordinates as None; a business can still be
registered with an address only.

PostalCodeLookup wraps the resolver for keystroke input: it waits for a
quiet period and applies only the result belonging to the latest input
for a draft. Earlier runs are not cancelled, their results are dropped.
"""

import asyncio
import logging
import re
from typing import Callable

import httpx

from localoco.config import settings
from localoco.middleware.exceptions import (
    AddressLookupError,
    AddressNotFoundError,
    InvalidPostalCodeError,
    LocalocoException,
)
from localoco.schemas.onboarding import AddressResolution

logger = logging.getLogger(__name__)

# Whole-string match; `$` alone would accept a trailing newline
POSTAL_CODE_RE = re.compile(r"[0-9]{6}")

INVALID_POSTAL_CODE_MESSAGE = "Invalid Postal Code. Please Key in a valid Postal Code"


def is_valid_postal_code(postal_code: str) -> bool:
    return bool(POSTAL_CODE_RE.fullmatch(postal_code or ""))


class AddressResolver:
    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    async def resolve(self, postal_code: str) -> AddressResolution:
        if not is_valid_postal_code(postal_code):
            raise InvalidPostalCodeError(postal_code)

        token = await self._get_token()
        address = await self._search(postal_code, token)
        latitude, longitude = await self._geocode(address)

        logger.info(
            "Postal code %s -> %s (%s, %s)", postal_code, address, latitude, longitude
        )
        return AddressResolution(address=address, latitude=latitude, longitude=longitude)

    async def _get_token(self) -> str:
        try:
            resp = await self._http.post(
                settings.onemap_token_url,
                json={"email": settings.onemap_email, "password": settings.onemap_password},
            )
            resp.raise_for_status()
            token = resp.json().get("access_token")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            raise AddressLookupError(f"Unable to authenticate with OneMap: {e}") from e
        if not token:
            raise AddressLookupError("Unable to authenticate with OneMap: no token issued")
        return token

    async def _search(self, postal_code: str, token: str) -> str:
        try:
            resp = await self._http.get(
                settings.onemap_search_url,
                params={"searchVal": postal_code, "returnGeom": "N", "getAddrDetails": "Y"},
                headers={"Authorization": token},
            )
            resp.raise_for_status()
            results = resp.json().get("results") or []
            address = (results[0].get("ADDRESS") or "").strip() if results else ""
        except (httpx.HTTPError, ValueError, AttributeError, TypeError, KeyError, IndexError) as e:
            raise AddressLookupError(f"OneMap address search failed: {e}") from e

        if not address:
            raise AddressNotFoundError(postal_code)
        return address

    async def _geocode(self, address: str) -> tuple[float | None, float | None]:
        try:
            resp = await self._http.get(
                settings.google_geocode_url,
                params={"address": address, "key": settings.google_maps_api_key},
            )
            resp.raise_for_status()
            data = resp.json()
            if data.get("status") != "OK" or not data.get("results"):
                logger.warning("No coordinates found for address: %s", address)
                return None, None
            location = data["results"][0]["geometry"]["location"]
            return float(location["lat"]), float(location["lng"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning("Geocoding failed for %r, continuing without coordinates: %s", address, e)
            return None, None


# Called with (draft_id, patch) to write a lookup outcome into a draft
ApplyFn = Callable[[str, dict], None]


class PostalCodeLookup:
    """Debounced, last-writer-wins postal code resolution per draft."""

    def __init__(
        self,
        resolver: AddressResolver,
        apply: ApplyFn,
        delay: float | None = None,
    ):
        self._resolver = resolver
        self._apply = apply
        self._delay = settings.address_debounce_seconds if delay is None else delay
        self._latest: dict[str, int] = {}
        self._counter = 0
        self._tasks: set[asyncio.Task] = set()

    def on_input(self, draft_id: str, postal_code: str) -> int:
        """Record a keystroke and schedule resolution. Returns the request token."""
        self._counter += 1
        token = self._counter
        self._latest[draft_id] = token

        if not postal_code:
            self._apply(draft_id, {
                "address": "",
                "latitude": None,
                "longitude": None,
                "address_error": None,
            })
            return token

        task = asyncio.create_task(self._run(draft_id, postal_code, token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return token

    def is_latest(self, draft_id: str, token: int) -> bool:
        return self._latest.get(draft_id) == token

    async def settle(self) -> None:
        """Wait for every scheduled resolution to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def _run(self, draft_id: str, postal_code: str, token: int) -> None:
        await asyncio.sleep(self._delay)
        if not self.is_latest(draft_id, token):
            return  # newer input arrived during the quiet period

        if not is_valid_postal_code(postal_code):
            # Still typing; nothing to resolve yet
            self._apply(draft_id, {"address_error": None})
            return

        try:
            resolution = await self._resolver.resolve(postal_code)
            patch = {
                "address": resolution.address,
                "latitude": resolution.latitude,
                "longitude": resolution.longitude,
                "address_error": None,
            }
        except LocalocoException as e:
            logger.info("Postal code %s lookup failed: %s", postal_code, e.message)
            patch = {
                "address": "",
                "latitude": None,
                "longitude": None,
                "address_error": INVALID_POSTAL_CODE_MESSAGE,
            }

        if not self.is_latest(draft_id, token):
            logger.debug("Dropping stale lookup for %s (token %d)", postal_code, token)
            return
        self._apply(draft_id, patch)

    def forget(self, draft_id: str) -> None:
        self._latest.pop(draft_id, None)
