"""The owner of one onboarding session.

All mutations of a session go through its OnboardingWizard, which gates
forward transitions on the ValidationEngine, routes postal-code input
through the debounced lookup, and runs the submission exactly once.
"""

import logging
from dataclasses import dataclass
from datetime import time

import httpx

from localoco.middleware.exceptions import (
    AccountCreationError,
    ReferralError,
    StepValidationError,
    WizardStateError,
)
from localoco.onboarding.address import AddressResolver, PostalCodeLookup
from localoco.onboarding.session import OnboardingSession
from localoco.onboarding.submission import SubmissionOrchestrator
from localoco.onboarding.uploads import ImageUploadOrchestrator
from localoco.onboarding.validation import ValidationEngine
from localoco.schemas.onboarding import (
    AccountView,
    BusinessDraft,
    BusinessDraftView,
    PendingImage,
    SubmissionReport,
    ValidationResult,
    WizardProgress,
)
from localoco.services.backend import AuthClient, BackendClient

logger = logging.getLogger(__name__)


@dataclass
class OnboardingServices:
    backend: BackendClient
    auth: AuthClient
    resolver: AddressResolver
    uploads: ImageUploadOrchestrator
    validator: ValidationEngine
    submitter: SubmissionOrchestrator
    lookup_delay: float | None = None


def build_services(http: httpx.AsyncClient, lookup_delay: float | None = None) -> OnboardingServices:
    backend = BackendClient(http)
    auth = AuthClient(http)
    uploads = ImageUploadOrchestrator(http)
    validator = ValidationEngine(backend)
    return OnboardingServices(
        backend=backend,
        auth=auth,
        resolver=AddressResolver(http),
        uploads=uploads,
        validator=validator,
        submitter=SubmissionOrchestrator(validator, auth, backend, uploads),
        lookup_delay=lookup_delay,
    )


class OnboardingWizard:
    def __init__(self, session: OnboardingSession, services: OnboardingServices):
        self.session = session
        self._services = services
        self._lookup = PostalCodeLookup(
            services.resolver, self._apply_lookup, delay=services.lookup_delay
        )

    # ── Transitions ─────────────────────────────────────────

    async def advance(self) -> ValidationResult:
        """Validate the current step and move forward if it passes."""
        session = self.session
        async with session.lock:
            if session.submitted:
                raise WizardStateError("This signup has already been submitted")
            # A lookup still in flight would race the address check
            await self._lookup.settle()
            result = await self._services.validator.validate(session)
            if result.valid:
                session.steps.advance()
                session.error = None
            else:
                session.error = result.message
            return result

    def retreat(self) -> int:
        return self.session.retreat()

    def set_business_ownership(self, has_business: bool) -> None:
        self.session.set_business_ownership(has_business)

    # ── Business drafts ─────────────────────────────────────

    def set_postal_code(self, postal_code: str) -> int:
        """Store the typed postal code and schedule the debounced lookup."""
        postal_code = postal_code.strip()
        draft = self.session.update_current_business(
            {"postal_code": postal_code, "address_error": None}
        )
        return self._lookup.on_input(draft.draft_id, postal_code)

    async def settle(self) -> None:
        await self._lookup.settle()

    def attach_image(self, filename: str, content_type: str | None, data: bytes) -> BusinessDraft:
        image = PendingImage(
            filename=filename,
            content_type=content_type or "application/octet-stream",
            data=data,
        )
        return self.session.update_current_business({"image_file": image, "image_url": None})

    def set_uniform_hours(self, open_at: time, close_at: time) -> BusinessDraft:
        draft = self.session.current_business
        hours = draft.opening_hours.uniform(open_at, close_at)
        return self.session.update_current_business(
            {"opening_hours": {day: h.model_dump() for day, h in hours.items()}}
        )

    def append_business(self) -> BusinessDraft:
        return self.session.append_business()

    def remove_business(self, index: int) -> BusinessDraft:
        removed = self.session.remove_business(index)
        self._lookup.forget(removed.draft_id)
        return removed

    def select_business(self, index: int) -> None:
        self.session.select_business(index)

    def _apply_lookup(self, draft_id: str, patch: dict) -> None:
        self.session.apply_to_draft(draft_id, patch)

    # ── Submission ──────────────────────────────────────────

    async def submit(self) -> SubmissionReport:
        session = self.session
        async with session.lock:
            if session.submitted:
                raise WizardStateError("This signup has already been submitted")
            if not session.steps.is_terminal:
                raise WizardStateError(
                    f"Submit is only available on step {session.steps.total_steps}"
                )
            await self._lookup.settle()
            try:
                report = await self._services.submitter.submit(session)
            except StepValidationError as e:
                session.error = e.message
                raise
            except AccountCreationError as e:
                logger.error("Signup %s aborted: %s", session.session_id, e.message)
                session.error = e.message
                raise

            session.report = report
            session.error = None if report.status == "success" else report.message
            return report

    async def apply_referral(self, referral_code: str | None = None) -> str:
        session = self.session
        if not session.submitted or not session.user_id:
            raise WizardStateError("A referral code can only be applied after signing up")
        if session.referral_applied:
            raise ReferralError("A referral code has already been applied")
        code = (referral_code or session.referral_code or "").strip().upper()
        if not code:
            raise ReferralError("No referral code given")

        message = await self._services.backend.apply_referral(session.user_id, code)
        session.referral_applied = True
        logger.info("Referral %s applied for user %s", code, session.user_id)
        return message

    # ── Views ───────────────────────────────────────────────

    def progress(self) -> WizardProgress:
        session = self.session
        businesses: list[BusinessDraftView] = []
        cursor = None
        if session.has_business:
            businesses = [BusinessDraftView.from_draft(d) for d in session.businesses]
            cursor = session.businesses.cursor

        return WizardProgress(
            session_id=session.session_id,
            variant=session.variant.kind,
            current_step=session.steps.current_step,
            total_steps=session.steps.total_steps,
            step_name=session.step_name,
            is_terminal=session.steps.is_terminal,
            error=session.error,
            account=AccountView(
                first_name=session.account.first_name,
                last_name=session.account.last_name,
                email=session.account.email,
            ),
            businesses=businesses,
            cursor=cursor,
            submitted=session.submitted,
            report=session.report,
        )
