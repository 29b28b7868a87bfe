"""Step machine and session variant tests."""

import random

import pytest

from localoco.middleware.exceptions import CollectionInvariantError, WizardStateError
from localoco.onboarding.session import (
    AccountWithBusinessesSession,
    OnboardingSession,
    SoloAccountSession,
    StepStateMachine,
)
from localoco.schemas.onboarding import SubmissionReport


@pytest.mark.unit
class TestStepStateMachine:

    def test_starts_on_step_one(self):
        steps = StepStateMachine(6)
        assert steps.current_step == 1
        assert not steps.is_terminal

    def test_clamped_at_both_ends(self):
        steps = StepStateMachine(3)
        assert steps.retreat() == 1
        for _ in range(5):
            steps.advance()
        assert steps.current_step == 3
        assert steps.is_terminal

    def test_random_walk_never_leaves_range(self):
        rng = random.Random(20240611)
        steps = StepStateMachine(6)
        for _ in range(500):
            if rng.random() < 0.55:
                steps.advance()
            else:
                steps.retreat()
            assert 1 <= steps.current_step <= 6

    def test_jump_out_of_range_rejected(self):
        steps = StepStateMachine(6)
        with pytest.raises(WizardStateError):
            steps.jump_to(7)
        with pytest.raises(WizardStateError):
            steps.jump_to(0)

    def test_single_step_is_terminal_immediately(self):
        assert StepStateMachine(1).is_terminal


@pytest.mark.unit
class TestOnboardingSession:

    def test_solo_variant(self):
        session = OnboardingSession(has_business=False)
        assert isinstance(session.variant, SoloAccountSession)
        assert session.steps.total_steps == 1
        assert session.steps.is_terminal
        with pytest.raises(WizardStateError):
            session.businesses

    def test_business_variant(self):
        session = OnboardingSession(has_business=True)
        assert isinstance(session.variant, AccountWithBusinessesSession)
        assert session.steps.total_steps == 6
        assert len(session.businesses) == 1
        assert session.step_name == "Account"

    def test_referral_code_normalised(self):
        assert OnboardingSession(referral_code="  friend10 ").referral_code == "FRIEND10"
        assert OnboardingSession(referral_code=None).referral_code is None

    def test_toggle_on_grows_step_count(self):
        session = OnboardingSession(has_business=False)
        session.set_business_ownership(True)
        assert session.steps.total_steps == 6
        assert session.steps.current_step == 1

    def test_toggle_off_past_step_one_returns_to_account(self):
        session = OnboardingSession(has_business=True)
        session.steps.jump_to(4)
        session.set_business_ownership(False)
        assert session.steps.total_steps == 1
        assert session.steps.current_step == 1

    def test_toggle_keeps_parked_drafts(self):
        session = OnboardingSession(has_business=True)
        session.update_current_business({"business_name": "Kopi Corner"})
        session.set_business_ownership(False)
        session.set_business_ownership(True)
        assert session.current_business.business_name == "Kopi Corner"

    def test_toggle_clears_error(self):
        session = OnboardingSession(has_business=True)
        session.error = "Please fill in all required fields"
        session.set_business_ownership(False)
        assert session.error is None

    def test_retreat_clears_error(self):
        session = OnboardingSession(has_business=True)
        session.steps.jump_to(3)
        session.error = "Please upload a business photo"
        assert session.retreat() == 2
        assert session.error is None

    def test_append_only_from_review(self):
        session = OnboardingSession(has_business=True)
        session.steps.jump_to(3)
        with pytest.raises(WizardStateError):
            session.append_business()
        assert len(session.businesses) == 1

    def test_append_from_review_restarts_at_basic_info(self):
        session = OnboardingSession(has_business=True)
        session.steps.jump_to(6)
        draft = session.append_business()
        assert session.steps.current_step == 2
        assert len(session.businesses) == 2
        assert session.businesses.cursor == 1
        assert session.current_business.draft_id == draft.draft_id

    def test_remove_sole_business_rejected(self):
        session = OnboardingSession(has_business=True)
        with pytest.raises(CollectionInvariantError):
            session.remove_business(0)

    def test_account_patch_merges(self):
        session = OnboardingSession()
        session.update_account({"first_name": "Mei"})
        session.update_account({"last_name": "Tan"})
        assert session.account.display_name == "Mei Tan"

    def test_lookup_result_lands_on_parked_draft(self):
        session = OnboardingSession(has_business=True)
        draft_id = session.current_business.draft_id
        session.set_business_ownership(False)
        session.apply_to_draft(draft_id, {"address": "1 ORCHARD ROAD"})
        session.set_business_ownership(True)
        assert session.current_business.address == "1 ORCHARD ROAD"

    def test_submitted_session_is_frozen(self):
        session = OnboardingSession(has_business=True)
        session.report = SubmissionReport(status="success", user_id="u1", message="done")
        with pytest.raises(WizardStateError):
            session.update_account({"first_name": "X"})
        with pytest.raises(WizardStateError):
            session.set_business_ownership(False)
        assert session.apply_to_draft(session.current_business.draft_id, {"address": "x"}) is None
