"""In-memory registry of live signup sessions.

Drafts are transient: nothing is persisted, and a restart or an
idle period longer than `session_ttl_seconds` discards them.
"""

import logging
import time

from localoco.config import settings
from localoco.middleware.exceptions import ResourceNotFoundError
from localoco.onboarding.session import OnboardingSession
from localoco.onboarding.wizard import OnboardingServices, OnboardingWizard

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, services: OnboardingServices, ttl_seconds: int | None = None):
        self._services = services
        self._ttl = settings.session_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._wizards: dict[str, OnboardingWizard] = {}

    def __len__(self) -> int:
        return len(self._wizards)

    @property
    def services(self) -> OnboardingServices:
        return self._services

    def create(self, has_business: bool = False, referral_code: str | None = None) -> OnboardingWizard:
        self.sweep()
        session = OnboardingSession(has_business=has_business, referral_code=referral_code)
        wizard = OnboardingWizard(session, self._services)
        self._wizards[session.session_id] = wizard
        logger.info("Signup session %s started (business=%s)", session.session_id, has_business)
        return wizard

    def get(self, session_id: str) -> OnboardingWizard:
        self.sweep()
        wizard = self._wizards.get(session_id)
        if wizard is None:
            raise ResourceNotFoundError("Signup session", session_id)
        wizard.session.touch()
        return wizard

    def discard(self, session_id: str) -> None:
        if self._wizards.pop(session_id, None) is None:
            raise ResourceNotFoundError("Signup session", session_id)
        logger.info("Signup session %s discarded", session_id)

    def sweep(self) -> int:
        """Drop sessions idle for longer than the TTL. Returns how many."""
        cutoff = time.monotonic() - self._ttl
        expired = [
            sid for sid, wizard in self._wizards.items()
            if wizard.session.touched_at < cutoff
        ]
        for sid in expired:
            del self._wizards[sid]
        if expired:
            logger.info("Expired %d idle signup sessions", len(expired))
        return len(expired)
