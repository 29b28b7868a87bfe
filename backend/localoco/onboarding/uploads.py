"""Two-phase image upload: ask the backend for a ticket, then PUT the bytes
straight to blob storage.

The ticket's upload target is a pre-signed URL; everything before the `?`
is the durable public URL of the blob, so that is what gets stored on the
business. Nothing here retries.
"""

import logging

import httpx

from localoco.config import settings
from localoco.middleware.exceptions import TicketRequestError, TransferError
from localoco.schemas.onboarding import PendingImage, UploadTicket

logger = logging.getLogger(__name__)


def strip_query(url: str) -> str:
    """Drop the query-string credential from a pre-signed URL."""
    return url.split("?", 1)[0]


class ImageUploadOrchestrator:
    def __init__(self, http: httpx.AsyncClient, backend_base_url: str | None = None):
        self._http = http
        self._base_url = (backend_base_url or settings.backend_base_url).rstrip("/")

    async def upload(self, image: PendingImage) -> str:
        """Upload one image and return its resolved resource URL."""
        ticket = await self.request_ticket(image.filename)
        await self.transfer(ticket, image)
        logger.info("Uploaded %s -> %s", image.filename, ticket.resolved_resource_url)
        return ticket.resolved_resource_url

    async def request_ticket(self, filename: str) -> UploadTicket:
        try:
            resp = await self._http.get(
                f"{self._base_url}/api/url-generator", params={"filename": filename}
            )
        except httpx.HTTPError as e:
            raise TicketRequestError(filename, str(e)) from e

        if resp.is_error:
            raise TicketRequestError(filename, f"HTTP {resp.status_code}")
        try:
            body = resp.json()
            target = body.get("uploadUrl") or body.get("uploadTarget")
        except (ValueError, AttributeError) as e:
            raise TicketRequestError(filename, "unreadable response") from e
        if not target:
            raise TicketRequestError(filename, "response had no upload URL")

        return UploadTicket(upload_target=target, resolved_resource_url=strip_query(target))

    async def transfer(self, ticket: UploadTicket, image: PendingImage) -> None:
        try:
            resp = await self._http.put(
                ticket.upload_target,
                content=image.data,
                headers={
                    "Content-Type": image.content_type,
                    "x-ms-blob-type": "BlockBlob",
                },
            )
        except httpx.HTTPError as e:
            raise TransferError(image.filename, str(e)) from e

        if resp.is_error:
            raise TransferError(image.filename, f"status {resp.status_code}")
