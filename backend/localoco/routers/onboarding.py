"""Signup wizard: account + any number of businesses in one guided session.

Endpoints (prefix /api/onboarding):
  POST   /sessions                                   → start a session
  GET    /sessions/{id}                              → progress + drafts
  DELETE /sessions/{id}                              → abandon
  PATCH  /sessions/{id}/account                      → edit the account draft
  PUT    /sessions/{id}/business-ownership           → toggle "I own a business"
  PATCH  /sessions/{id}/businesses/current           → edit the current draft
  PUT    /sessions/{id}/businesses/current/postal-code → debounced address lookup
  PUT    /sessions/{id}/businesses/current/hours/uniform → same hours every day
  POST   /sessions/{id}/businesses/current/image     → attach the business photo
  POST   /sessions/{id}/businesses                   → add another business
  DELETE /sessions/{id}/businesses/{index}           → remove a business
  PUT    /sessions/{id}/cursor                       → switch the edited business
  POST   /sessions/{id}/advance                      → validate + next step
  POST   /sessions/{id}/retreat                      → previous step
  POST   /sessions/{id}/submit                       → create account + businesses
  POST   /sessions/{id}/referral                     → apply a referral code
  GET    /address/{postal_code}                      → one-shot address lookup

Design:
  - Sessions live in memory only; nothing is persisted until submit.
  - Blocked transitions come back as 422 with the step in `details`.
  - A partially failed submission is still a 200: the account exists.
"""

from fastapi import APIRouter, Depends, File, UploadFile, status

from localoco.middleware.exceptions import StepValidationError
from localoco.onboarding.store import SessionStore
from localoco.onboarding.wizard import build_services
from localoco.schemas.onboarding import (
    AccountPatch,
    AddressResolution,
    BusinessDraftPatch,
    CursorInput,
    OwnershipInput,
    PostalCodeInput,
    ReferralInput,
    SessionCreate,
    SubmissionReport,
    UniformHoursInput,
    WizardProgress,
)
from localoco.services.backend import get_http_client

router = APIRouter()

_store: SessionStore | None = None


def get_store() -> SessionStore:
    global _store
    if _store is None:
        _store = SessionStore(build_services(get_http_client()))
    return _store


# ── Sessions ─────────────────────────────────────────────────

@router.post("/sessions", response_model=WizardProgress, status_code=status.HTTP_201_CREATED)
async def create_session(body: SessionCreate, store: SessionStore = Depends(get_store)):
    wizard = store.create(has_business=body.has_business, referral_code=body.referral_code)
    return wizard.progress()


@router.get("/sessions/{session_id}", response_model=WizardProgress)
async def get_progress(session_id: str, store: SessionStore = Depends(get_store)):
    return store.get(session_id).progress()


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def abandon_session(session_id: str, store: SessionStore = Depends(get_store)):
    store.discard(session_id)


@router.patch("/sessions/{session_id}/account", response_model=WizardProgress)
async def update_account(
    session_id: str,
    body: AccountPatch,
    store: SessionStore = Depends(get_store),
):
    wizard = store.get(session_id)
    wizard.session.update_account(body)
    return wizard.progress()


@router.put("/sessions/{session_id}/business-ownership", response_model=WizardProgress)
async def set_business_ownership(
    session_id: str,
    body: OwnershipInput,
    store: SessionStore = Depends(get_store),
):
    wizard = store.get(session_id)
    wizard.set_business_ownership(body.has_business)
    return wizard.progress()


# ── Business drafts ──────────────────────────────────────────

@router.patch("/sessions/{session_id}/businesses/current", response_model=WizardProgress)
async def update_current_business(
    session_id: str,
    body: BusinessDraftPatch,
    store: SessionStore = Depends(get_store),
):
    wizard = store.get(session_id)
    wizard.session.update_current_business(body)
    return wizard.progress()


@router.put("/sessions/{session_id}/businesses/current/postal-code", response_model=WizardProgress)
async def set_postal_code(
    session_id: str,
    body: PostalCodeInput,
    store: SessionStore = Depends(get_store),
):
    """Record the postal code; the address fills in once typing pauses."""
    wizard = store.get(session_id)
    wizard.set_postal_code(body.postal_code)
    return wizard.progress()


@router.put("/sessions/{session_id}/businesses/current/hours/uniform", response_model=WizardProgress)
async def set_uniform_hours(
    session_id: str,
    body: UniformHoursInput,
    store: SessionStore = Depends(get_store),
):
    wizard = store.get(session_id)
    wizard.set_uniform_hours(body.open, body.close)
    return wizard.progress()


@router.post("/sessions/{session_id}/businesses/current/image", response_model=WizardProgress)
async def attach_image(
    session_id: str,
    file: UploadFile = File(...),
    store: SessionStore = Depends(get_store),
):
    """Keep the photo on the draft; it is uploaded to storage on submit."""
    wizard = store.get(session_id)
    data = await file.read()
    wizard.attach_image(file.filename or "image", file.content_type, data)
    return wizard.progress()


@router.post(
    "/sessions/{session_id}/businesses",
    response_model=WizardProgress,
    status_code=status.HTTP_201_CREATED,
)
async def append_business(session_id: str, store: SessionStore = Depends(get_store)):
    wizard = store.get(session_id)
    wizard.append_business()
    return wizard.progress()


@router.delete("/sessions/{session_id}/businesses/{index}", response_model=WizardProgress)
async def remove_business(
    session_id: str,
    index: int,
    store: SessionStore = Depends(get_store),
):
    wizard = store.get(session_id)
    wizard.remove_business(index)
    return wizard.progress()


@router.put("/sessions/{session_id}/cursor", response_model=WizardProgress)
async def select_business(
    session_id: str,
    body: CursorInput,
    store: SessionStore = Depends(get_store),
):
    wizard = store.get(session_id)
    wizard.select_business(body.index)
    return wizard.progress()


# ── Transitions ──────────────────────────────────────────────

@router.post("/sessions/{session_id}/advance", response_model=WizardProgress)
async def advance(session_id: str, store: SessionStore = Depends(get_store)):
    wizard = store.get(session_id)
    result = await wizard.advance()
    if not result.valid:
        raise StepValidationError(result.step, result.message)
    return wizard.progress()


@router.post("/sessions/{session_id}/retreat", response_model=WizardProgress)
async def retreat(session_id: str, store: SessionStore = Depends(get_store)):
    wizard = store.get(session_id)
    wizard.retreat()
    return wizard.progress()


@router.post("/sessions/{session_id}/submit", response_model=SubmissionReport)
async def submit(session_id: str, store: SessionStore = Depends(get_store)):
    wizard = store.get(session_id)
    return await wizard.submit()


@router.post("/sessions/{session_id}/referral")
async def apply_referral(
    session_id: str,
    body: ReferralInput,
    store: SessionStore = Depends(get_store),
):
    wizard = store.get(session_id)
    message = await wizard.apply_referral(body.referral_code)
    return {"success": True, "message": message}


# ── Address lookup ───────────────────────────────────────────

@router.get("/address/{postal_code}", response_model=AddressResolution)
async def resolve_address(postal_code: str, store: SessionStore = Depends(get_store)):
    return await store.services.resolver.resolve(postal_code)
