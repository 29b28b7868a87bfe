"""Session context for one signup.

An OnboardingSession is the explicit context every onboarding component
receives: the account draft, the session variant (solo account vs. account
with businesses), the step machine, and the last step-level error.

The business-ownership flag is not a boolean checked all over the place;
it selects the variant, and the variant fixes the number of steps:

    SoloAccountSession            -> 1 step  (account)
    AccountWithBusinessesSession  -> 6 steps (account, basic info, contact,
                                              hours, details, review)
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import ClassVar

from localoco.middleware.exceptions import WizardStateError
from localoco.onboarding.drafts import BusinessDraftCollection
from localoco.schemas.onboarding import (
    STEP_NAMES,
    AccountDraft,
    AccountPatch,
    BusinessDraft,
    BusinessDraftPatch,
    SubmissionReport,
    WizardStep,
)


class StepStateMachine:
    """Current step within [1, total_steps]."""

    def __init__(self, total_steps: int):
        self._total_steps = total_steps
        self.current_step = 1

    @property
    def total_steps(self) -> int:
        return self._total_steps

    @property
    def is_terminal(self) -> bool:
        return self.current_step == self._total_steps

    def advance(self) -> int:
        """Move forward one step. Callers gate this on validation."""
        self.current_step = min(self.current_step + 1, self._total_steps)
        return self.current_step

    def retreat(self) -> int:
        self.current_step = max(self.current_step - 1, 1)
        return self.current_step

    def jump_to(self, step: int) -> int:
        if not 1 <= step <= self._total_steps:
            raise WizardStateError(f"Step {step} does not exist (1-{self._total_steps})")
        self.current_step = step
        return self.current_step

    def resize(self, total_steps: int) -> None:
        """Change the step count; a step that no longer exists falls back to 1."""
        self._total_steps = total_steps
        if self.current_step > total_steps:
            self.current_step = 1


# ── Session variants ─────────────────────────────────────────

@dataclass
class SoloAccountSession:
    kind: ClassVar[str] = "solo"
    total_steps: ClassVar[int] = 1


@dataclass
class AccountWithBusinessesSession:
    kind: ClassVar[str] = "business"
    total_steps: ClassVar[int] = len(WizardStep)

    businesses: BusinessDraftCollection = field(default_factory=BusinessDraftCollection)


SessionVariant = SoloAccountSession | AccountWithBusinessesSession


class OnboardingSession:
    def __init__(
        self,
        has_business: bool = False,
        referral_code: str | None = None,
        session_id: str | None = None,
    ):
        self.session_id = session_id or uuid.uuid4().hex
        self.account = AccountDraft()
        # Kept across ownership toggles so switching off and on loses nothing
        self._businesses = BusinessDraftCollection()
        self.variant: SessionVariant = self._variant_for(has_business)
        self.steps = StepStateMachine(self.variant.total_steps)
        self.error: str | None = None
        self.referral_code = referral_code.strip().upper() if referral_code else None
        self.user_id: str | None = None
        self.report: SubmissionReport | None = None
        self.referral_applied = False
        # Serialises advance/submit on this session
        self.lock = asyncio.Lock()
        self.touched_at = time.monotonic()

    # ── Variant ─────────────────────────────────────────────

    @property
    def has_business(self) -> bool:
        return isinstance(self.variant, AccountWithBusinessesSession)

    @property
    def businesses(self) -> BusinessDraftCollection:
        if not isinstance(self.variant, AccountWithBusinessesSession):
            raise WizardStateError("Business details are only collected for business owners")
        return self.variant.businesses

    @property
    def current_business(self) -> BusinessDraft:
        return self.businesses.current

    def _variant_for(self, has_business: bool) -> SessionVariant:
        if has_business:
            return AccountWithBusinessesSession(businesses=self._businesses)
        return SoloAccountSession()

    def set_business_ownership(self, has_business: bool) -> None:
        self._ensure_open()
        self.error = None
        if has_business == self.has_business:
            return
        self.variant = self._variant_for(has_business)
        if self.steps.current_step > 1:
            # The step we're on may not exist in the other variant
            self.steps.jump_to(1)
        self.steps.resize(self.variant.total_steps)

    # ── Steps ───────────────────────────────────────────────

    @property
    def step_name(self) -> str:
        return STEP_NAMES[WizardStep(self.steps.current_step)]

    def retreat(self) -> int:
        self._ensure_open()
        self.error = None
        return self.steps.retreat()

    # ── Edits ───────────────────────────────────────────────

    def update_account(self, patch: AccountPatch | dict) -> AccountDraft:
        self._ensure_open()
        if isinstance(patch, dict):
            patch = AccountPatch.model_validate(patch)
        data = {k: v for k, v in patch.model_dump(exclude_unset=True).items() if v is not None}
        self.account = self.account.model_copy(update=data)
        self.error = None
        return self.account

    def update_current_business(self, patch: BusinessDraftPatch | dict) -> BusinessDraft:
        self._ensure_open()
        self.error = None
        return self.businesses.update_current(patch)

    def append_business(self) -> BusinessDraft:
        """Start another business from the review step; re-enters step 2."""
        self._ensure_open()
        collection = self.businesses
        if not self.steps.is_terminal:
            raise WizardStateError("Finish the current business before adding another one")
        draft = collection.append()
        self.steps.jump_to(WizardStep.BASIC_INFO)
        self.error = None
        return draft

    def remove_business(self, index: int) -> BusinessDraft:
        self._ensure_open()
        return self.businesses.remove_at(index)

    def apply_to_draft(self, draft_id: str, patch: BusinessDraftPatch | dict) -> BusinessDraft | None:
        """Write into a specific draft, wherever the cursor is.

        Works while the drafts are parked too, so a lookup finishing after the
        ownership flag was switched off still lands on the right draft.
        """
        if self.submitted:
            return None
        return self._businesses.update_by_id(draft_id, patch)

    def select_business(self, index: int) -> None:
        self._ensure_open()
        self.businesses.set_cursor(index)
        self.error = None

    # ── Lifecycle ───────────────────────────────────────────

    @property
    def submitted(self) -> bool:
        return self.report is not None

    def touch(self) -> None:
        self.touched_at = time.monotonic()

    def _ensure_open(self) -> None:
        if self.submitted:
            raise WizardStateError("This signup has already been submitted")
