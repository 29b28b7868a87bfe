"""Per-step rules, evaluated for the step being left.

Nothing is cached: every advance attempt re-runs the local checks and the
backend uniqueness checks. A uniqueness check that fails to run (as opposed
to reporting a duplicate) is logged and does not block the step.
"""

import logging

from localoco.config import settings
from localoco.onboarding.session import OnboardingSession
from localoco.schemas.onboarding import (
    AccountDraft,
    Availability,
    BusinessDraft,
    ValidationResult,
    WizardStep,
)
from localoco.services.backend import BackendClient

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = "Please fill in all required fields"


def _note_unchecked(availability: Availability, what: str, value: str) -> None:
    if availability == Availability.UNKNOWN:
        logger.warning("Could not verify %s %r is unused; allowing the step", what, value)


def check_opening_hours(draft: BusinessDraft) -> str | None:
    """Return the hours problem for `draft`, or None when the hours are usable."""
    if draft.open_24_hours:
        return None
    hours = draft.opening_hours
    if all(day.closed for _, day in hours.items()):
        return "Business must be open at least one day per week"
    for name, day in hours.items():
        if not day.closed and day.open >= day.close:
            return f"Please set valid opening hours for all open days ({name} closes before it opens)"
    return None


class ValidationEngine:
    def __init__(self, backend: BackendClient, min_password_length: int | None = None):
        self._backend = backend
        self._min_password_length = min_password_length or settings.min_password_length

    async def validate(self, session: OnboardingSession, step: int | None = None) -> ValidationResult:
        step = step or session.steps.current_step

        if step == WizardStep.ACCOUNT:
            return await self.validate_account(session.account)
        if not session.has_business:
            return ValidationResult.ok(step)

        collection = session.businesses
        draft = collection.current
        message = await self._business_rule(step, draft)
        if message is None:
            return ValidationResult.ok(step)
        return ValidationResult.fail(step, f"{draft.label(collection.cursor)}: {message}")

    async def validate_account(self, account: AccountDraft) -> ValidationResult:
        step = WizardStep.ACCOUNT
        if not (account.first_name and account.last_name and account.email and account.password):
            return ValidationResult.fail(step, REQUIRED_FIELDS_MESSAGE)
        if account.password != account.password_confirmation:
            return ValidationResult.fail(step, "Passwords do not match")
        if len(account.password) < self._min_password_length:
            return ValidationResult.fail(
                step,
                f"Password must be at least {self._min_password_length} characters long",
            )

        availability = await self._backend.check_email(account.email)
        if availability == Availability.TAKEN:
            return ValidationResult.fail(step, "This email is already registered")
        _note_unchecked(availability, "email", account.email)
        return ValidationResult.ok(step)

    async def _business_rule(self, step: int, draft: BusinessDraft) -> str | None:
        if step == WizardStep.BASIC_INFO:
            return await self._basic_info(draft)
        if step == WizardStep.CONTACT:
            return await self._contact(draft)
        if step == WizardStep.HOURS:
            return check_opening_hours(draft)
        if step == WizardStep.DETAILS:
            return self._details(draft)
        return None

    async def _basic_info(self, draft: BusinessDraft) -> str | None:
        required = (draft.uen, draft.business_name, draft.category, draft.description, draft.address)
        if not all(required):
            return REQUIRED_FIELDS_MESSAGE
        if draft.address_error:
            return draft.address_error
        availability = await self._backend.check_uen(draft.uen)
        if availability == Availability.TAKEN:
            return "This UEN is already registered"
        _note_unchecked(availability, "UEN", draft.uen)
        return None

    async def _contact(self, draft: BusinessDraft) -> str | None:
        if not draft.business_email or not draft.phone_number:
            return "Please fill in all required contact fields"
        if "@" not in draft.business_email:
            return "Please enter a valid business email"
        if not draft.has_image:
            return "Please upload a business photo"
        availability = await self._backend.check_email(draft.business_email)
        if availability == Availability.TAKEN:
            return "This business email is already registered"
        _note_unchecked(availability, "business email", draft.business_email)
        return None

    @staticmethod
    def _details(draft: BusinessDraft) -> str | None:
        if draft.price_tier is None:
            return "Please select a price tier"
        if not draft.payment_options:
            return "Please select at least one payment option"
        return None
