"""Signup + business onboarding core."""

from localoco.onboarding.drafts import BusinessDraftCollection  # noqa: F401
from localoco.onboarding.session import (  # noqa: F401
    AccountWithBusinessesSession,
    OnboardingSession,
    SoloAccountSession,
    StepStateMachine,
)
from localoco.onboarding.address import AddressResolver, PostalCodeLookup  # noqa: F401
from localoco.onboarding.uploads import ImageUploadOrchestrator  # noqa: F401
from localoco.onboarding.validation import ValidationEngine  # noqa: F401
from localoco.onboarding.submission import SubmissionOrchestrator  # noqa: F401
from localoco.onboarding.wizard import OnboardingServices, OnboardingWizard, build_services  # noqa: F401
from localoco.onboarding.store import SessionStore  # noqa: F401
