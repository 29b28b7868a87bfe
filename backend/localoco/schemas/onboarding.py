"""Pydantic schemas for the signup + business onboarding wizard.

Drafts are permissive: every field may be empty while the user
is still typing, and the step rules live in the ValidationEngine.
The `*Patch` variants use Optional fields so PATCH (partial edits) works.
"""

import uuid
from datetime import time
from enum import Enum, IntEnum
from typing import Literal

from pydantic import BaseModel, Field, RootModel, field_serializer, field_validator


DAYS_OF_WEEK = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

FULL_DAY_OPEN = time(0, 0)
FULL_DAY_CLOSE = time(23, 59)


class WizardStep(IntEnum):
    ACCOUNT = 1
    BASIC_INFO = 2
    CONTACT = 3
    HOURS = 4
    DETAILS = 5
    REVIEW = 6


STEP_NAMES = {
    WizardStep.ACCOUNT: "Account",
    WizardStep.BASIC_INFO: "Basic Info",
    WizardStep.CONTACT: "Contact",
    WizardStep.HOURS: "Hours",
    WizardStep.DETAILS: "Details",
    WizardStep.REVIEW: "Review",
}


class PriceTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Older clients send the "$" buttons verbatim
LEGACY_PRICE_TIERS = {
    "$": PriceTier.LOW,
    "$$": PriceTier.MEDIUM,
    "$$$": PriceTier.HIGH,
    "$$$$": PriceTier.HIGH,
}


class PaymentOption(str, Enum):
    CASH = "cash"
    CARD = "card"
    PAYNOW = "paynow"
    DIGITAL_WALLETS = "digital_wallets"


class Availability(str, Enum):
    """Outcome of a single uniqueness check against the backend."""
    AVAILABLE = "available"
    TAKEN = "taken"
    UNKNOWN = "unknown"  # the check itself failed


def _normalise_payment_options(value):
    # "Digital Wallets" -> "digital_wallets", "PayNow" -> "paynow"
    if value is None:
        return value
    return [
        v.strip().lower().replace(" ", "_") if isinstance(v, str) else v
        for v in value
    ]


def _normalise_price_tier(value):
    if value == "":
        return None
    if isinstance(value, str) and value in LEGACY_PRICE_TIERS:
        return LEGACY_PRICE_TIERS[value]
    return value


# ── Account ──────────────────────────────────────────────────

class AccountDraft(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    password: str = ""
    password_confirmation: str = ""

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class AccountPatch(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    password: str | None = None
    password_confirmation: str | None = None


# ── Opening hours ────────────────────────────────────────────

class DayHours(BaseModel):
    open: time = time(9, 0)
    close: time = time(17, 0)
    closed: bool = False

    @field_serializer("open", "close")
    def _as_hhmm(self, value: time) -> str:
        return value.strftime("%H:%M")


class DayHoursPatch(BaseModel):
    open: time | None = None
    close: time | None = None
    closed: bool | None = None


def _check_days(value: dict) -> dict:
    unknown = [day for day in value if day not in DAYS_OF_WEEK]
    if unknown:
        raise ValueError(f"Unknown weekday(s): {', '.join(unknown)}")
    return value


class OpeningHours(RootModel[dict[str, DayHours]]):
    """Weekday -> DayHours, always holding all seven days in weekday order."""

    root: dict[str, DayHours] = Field(
        default_factory=lambda: {day: DayHours() for day in DAYS_OF_WEEK}
    )

    @field_validator("root")
    @classmethod
    def _all_weekdays(cls, value: dict[str, DayHours]) -> dict[str, DayHours]:
        _check_days(value)
        return {day: value.get(day, DayHours()) for day in DAYS_OF_WEEK}

    def __getitem__(self, day: str) -> DayHours:
        return self.root[day]

    def items(self):
        return self.root.items()

    def effective(self, open_24_hours: bool) -> dict[str, DayHours]:
        """Hours as the business actually keeps them.

        The 24-hour flag overrides whatever is stored per day.
        """
        if open_24_hours:
            return {
                day: DayHours(open=FULL_DAY_OPEN, close=FULL_DAY_CLOSE)
                for day in DAYS_OF_WEEK
            }
        return dict(self.root)

    def uniform(self, open_at: time, close_at: time) -> "OpeningHours":
        """Same range every day; closed flags are kept."""
        return OpeningHours({
            day: DayHours(open=open_at, close=close_at, closed=hours.closed)
            for day, hours in self.root.items()
        })


# ── Business draft ───────────────────────────────────────────

class PendingImage(BaseModel):
    """An image picked by the user but not yet uploaded."""
    filename: str
    content_type: str = "application/octet-stream"
    data: bytes


_NULLABLE_DRAFT_FIELDS = {
    "latitude",
    "longitude",
    "image_file",
    "image_url",
    "price_tier",
    "address_error",
}


class BusinessDraft(BaseModel):
    draft_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    uen: str = ""
    business_name: str = ""
    category: str = ""
    description: str = ""
    address: str = ""
    postal_code: str = ""
    latitude: float | None = None
    longitude: float | None = None
    phone_number: str = ""
    business_email: str = ""
    website_link: str = ""
    social_media_link: str = ""
    image_file: PendingImage | None = None
    image_url: str | None = None
    price_tier: PriceTier | None = None
    open_24_hours: bool = False
    opening_hours: OpeningHours = Field(default_factory=OpeningHours)
    offers_delivery: bool = False
    offers_pickup: bool = False
    payment_options: set[PaymentOption] = Field(default_factory=set)
    # Last postal-code lookup failure; blocks the basic-info step
    address_error: str | None = None

    @field_validator("price_tier", mode="before")
    @classmethod
    def _legacy_price_tier(cls, value):
        return _normalise_price_tier(value)

    @field_validator("payment_options", mode="before")
    @classmethod
    def _payment_option_labels(cls, value):
        return _normalise_payment_options(value)

    @property
    def has_image(self) -> bool:
        return self.image_file is not None or bool(self.image_url)

    def label(self, index: int) -> str:
        """Human-readable handle used in every per-business message."""
        if self.business_name:
            return f"Business {index + 1} ({self.business_name})"
        return f"Business {index + 1}"

    def merged(self, patch: "BusinessDraftPatch") -> "BusinessDraft":
        """Return a new draft with the set fields of `patch` applied."""
        data = self.model_dump()
        updates = {
            k: v
            for k, v in patch.model_dump(exclude_unset=True).items()
            if v is not None or k in _NULLABLE_DRAFT_FIELDS
        }
        hours = updates.pop("opening_hours", None)
        if hours:
            for day, entry in hours.items():
                data["opening_hours"][day].update(
                    {k: v for k, v in entry.items() if v is not None}
                )
        data.update(updates)
        return BusinessDraft.model_validate(data)


def new_business_draft() -> BusinessDraft:
    """Factory for a blank draft: 09:00-17:00 every day, no identifiers."""
    return BusinessDraft()


class BusinessDraftPatch(BaseModel):
    """Client edits to a draft. Unknown keys (including `address_error`) are ignored."""

    uen: str | None = None
    business_name: str | None = None
    category: str | None = None
    description: str | None = None
    address: str | None = None
    postal_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    phone_number: str | None = None
    business_email: str | None = None
    website_link: str | None = None
    social_media_link: str | None = None
    image_file: PendingImage | None = None
    image_url: str | None = None
    price_tier: PriceTier | None = None
    open_24_hours: bool | None = None
    opening_hours: dict[str, DayHoursPatch] | None = None
    offers_delivery: bool | None = None
    offers_pickup: bool | None = None
    payment_options: set[PaymentOption] | None = None

    @field_validator("price_tier", mode="before")
    @classmethod
    def _legacy_price_tier(cls, value):
        return _normalise_price_tier(value)

    @field_validator("payment_options", mode="before")
    @classmethod
    def _payment_option_labels(cls, value):
        return _normalise_payment_options(value)

    @field_validator("opening_hours")
    @classmethod
    def _known_days(cls, value):
        if value is not None:
            _check_days(value)
        return value


class DraftUpdate(BusinessDraftPatch):
    """Server-side edits; only the postal-code lookup sets `address_error`."""

    address_error: str | None = None


class UniformHoursInput(BaseModel):
    open: time
    close: time


# ── Pipeline results ─────────────────────────────────────────

class AddressResolution(BaseModel):
    address: str
    latitude: float | None = None
    longitude: float | None = None


class UploadTicket(BaseModel):
    upload_target: str
    resolved_resource_url: str


class ValidationResult(BaseModel):
    step: int
    valid: bool
    message: str | None = None

    @classmethod
    def ok(cls, step: int) -> "ValidationResult":
        return cls(step=step, valid=True)

    @classmethod
    def fail(cls, step: int, message: str) -> "ValidationResult":
        return cls(step=step, valid=False, message=message)


class BusinessOutcome(BaseModel):
    index: int
    business_name: str
    success: bool
    message: str | None = None


class SubmissionReport(BaseModel):
    status: Literal["success", "partial"]
    user_id: str
    registered: int = 0
    total: int = 0
    message: str
    outcomes: list[BusinessOutcome] = []

    @property
    def failures(self) -> list[BusinessOutcome]:
        return [o for o in self.outcomes if not o.success]


# ── API views ────────────────────────────────────────────────

class SessionCreate(BaseModel):
    has_business: bool = False
    referral_code: str | None = None


class OwnershipInput(BaseModel):
    has_business: bool


class PostalCodeInput(BaseModel):
    postal_code: str


class CursorInput(BaseModel):
    index: int


class ReferralInput(BaseModel):
    referral_code: str | None = None


class AccountView(BaseModel):
    first_name: str
    last_name: str
    email: str


class BusinessDraftView(BaseModel):
    draft_id: str
    uen: str
    business_name: str
    category: str
    description: str
    address: str
    postal_code: str
    latitude: float | None
    longitude: float | None
    phone_number: str
    business_email: str
    website_link: str
    social_media_link: str
    has_image: bool
    image_filename: str | None = None
    image_url: str | None = None
    price_tier: PriceTier | None
    open_24_hours: bool
    opening_hours: dict[str, DayHours]
    offers_delivery: bool
    offers_pickup: bool
    payment_options: list[PaymentOption]
    address_error: str | None = None

    @classmethod
    def from_draft(cls, draft: BusinessDraft) -> "BusinessDraftView":
        data = draft.model_dump(exclude={"image_file", "opening_hours", "payment_options"})
        return cls(
            **data,
            has_image=draft.has_image,
            image_filename=draft.image_file.filename if draft.image_file else None,
            opening_hours=dict(draft.opening_hours.items()),
            payment_options=sorted(draft.payment_options, key=lambda p: p.value),
        )


class WizardProgress(BaseModel):
    session_id: str
    variant: Literal["solo", "business"]
    current_step: int
    total_steps: int
    step_name: str
    is_terminal: bool
    error: str | None = None
    account: AccountView
    businesses: list[BusinessDraftView] = []
    cursor: int | None = None
    submitted: bool = False
    report: SubmissionReport | None = None
