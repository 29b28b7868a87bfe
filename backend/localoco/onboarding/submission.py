"""Final submission: one account, then every business concurrently.

Ordering:
  1. validate the terminal step
  2. sign up (a failure here aborts everything; no business is attempted)
  3. per business, concurrently: upload the pending image, then register

Business attempts are isolated from each other. Any subset may fail; the
account exists regardless, so the outcome is then a partial success and
not an error.
"""

import asyncio
import logging
from datetime import date

from localoco.middleware.exceptions import LocalocoException, StepValidationError
from localoco.onboarding.session import OnboardingSession
from localoco.onboarding.uploads import ImageUploadOrchestrator
from localoco.onboarding.validation import ValidationEngine
from localoco.schemas.onboarding import (
    BusinessDraft,
    BusinessOutcome,
    SubmissionReport,
)
from localoco.services.backend import AuthClient, BackendClient

logger = logging.getLogger(__name__)


def build_registration_payload(draft: BusinessDraft, owner_id: str, image_url: str) -> dict:
    """Registration body in the backend's wire format."""
    hours = draft.opening_hours.effective(draft.open_24_hours)
    return {
        "ownerId": owner_id,
        "uen": draft.uen,
        "businessName": draft.business_name,
        "businessCategory": draft.category,
        "description": draft.description,
        "address": draft.address,
        "postalCode": draft.postal_code,
        "latitude": draft.latitude,
        "longitude": draft.longitude,
        "phoneNumber": draft.phone_number,
        "email": draft.business_email,
        "websiteLink": draft.website_link,
        "socialMediaLink": draft.social_media_link,
        "wallpaper": image_url,
        "dateOfCreation": date.today().isoformat(),
        "priceTier": draft.price_tier.value if draft.price_tier else None,
        "open247": draft.open_24_hours,
        "openingHours": {
            day: {"open": h.open.strftime("%H:%M"), "close": h.close.strftime("%H:%M"), "closed": h.closed}
            for day, h in hours.items()
        },
        "offersDelivery": draft.offers_delivery,
        "offersPickup": draft.offers_pickup,
        "paymentOptions": sorted(p.value for p in draft.payment_options),
    }


class SubmissionOrchestrator:
    def __init__(
        self,
        validator: ValidationEngine,
        auth: AuthClient,
        backend: BackendClient,
        uploads: ImageUploadOrchestrator,
    ):
        self._validator = validator
        self._auth = auth
        self._backend = backend
        self._uploads = uploads

    async def submit(self, session: OnboardingSession) -> SubmissionReport:
        result = await self._validator.validate(session)
        if not result.valid:
            raise StepValidationError(result.step, result.message)

        account = session.account
        user_id = await self._auth.sign_up(
            email=account.email,
            password=account.password,
            name=account.display_name,
        )
        session.user_id = user_id
        logger.info("User registered: %s", user_id)

        if not session.has_business:
            return SubmissionReport(
                status="success",
                user_id=user_id,
                message="Account created successfully!",
            )

        drafts = list(session.businesses)
        outcomes = await asyncio.gather(
            *(self._register_one(i, draft, user_id) for i, draft in enumerate(drafts))
        )
        registered = sum(1 for o in outcomes if o.success)
        total = len(drafts)

        if registered == total:
            logger.info("User %s registered with %d businesses", user_id, total)
            return SubmissionReport(
                status="success",
                user_id=user_id,
                registered=registered,
                total=total,
                message=f"Registered user + {total} businesses",
                outcomes=outcomes,
            )

        failed = ", ".join(o.message for o in outcomes if not o.success)
        logger.warning(
            "User %s registered with %d/%d businesses; failed: %s",
            user_id, registered, total, failed,
        )
        return SubmissionReport(
            status="partial",
            user_id=user_id,
            registered=registered,
            total=total,
            message=f"registered user + {registered}/{total} businesses",
            outcomes=outcomes,
        )

    async def _register_one(self, index: int, draft: BusinessDraft, owner_id: str) -> BusinessOutcome:
        label = draft.label(index)
        try:
            image_url = draft.image_url or ""
            if draft.image_file is not None:
                image_url = await self._uploads.upload(draft.image_file)
            await self._backend.register_business(
                build_registration_payload(draft, owner_id, image_url)
            )
        except LocalocoException as e:
            logger.warning("%s failed to register: %s", label, e.message)
            return BusinessOutcome(
                index=index,
                business_name=draft.business_name,
                success=False,
                message=f"{label}: {e.message}",
            )
        except Exception:
            logger.exception("%s failed to register", label)
            return BusinessOutcome(
                index=index,
                business_name=draft.business_name,
                success=False,
                message=f"{label}: unexpected error",
            )

        logger.info("%s registered for owner %s", label, owner_id)
        return BusinessOutcome(index=index, business_name=draft.business_name, success=True)
