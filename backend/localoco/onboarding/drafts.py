"""Ordered business drafts plus the cursor naming the one being edited."""

from localoco.middleware.exceptions import CollectionInvariantError
from localoco.schemas.onboarding import BusinessDraft, BusinessDraftPatch, DraftUpdate, new_business_draft


class BusinessDraftCollection:
    """Never empty; the cursor is always a valid index.

    Drafts are replaced, not mutated in place, so a draft handed out by
    `current` is a snapshot.
    """

    def __init__(self, drafts: list[BusinessDraft] | None = None):
        self._drafts: list[BusinessDraft] = list(drafts) if drafts else [new_business_draft()]
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._drafts)

    def __iter__(self):
        return iter(self._drafts)

    def __getitem__(self, index: int) -> BusinessDraft:
        return self._drafts[index]

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current(self) -> BusinessDraft:
        return self._drafts[self._cursor]

    def append(self) -> BusinessDraft:
        draft = new_business_draft()
        self._drafts.append(draft)
        self._cursor = len(self._drafts) - 1
        return draft

    def remove_at(self, index: int) -> BusinessDraft:
        self._check_index(index)
        if len(self._drafts) == 1:
            raise CollectionInvariantError(
                "At least one business is required while registering as a business owner"
            )
        removed = self._drafts.pop(index)
        # Removing at or before the cursor steps it back one draft
        if index <= self._cursor and self._cursor > 0:
            self._cursor -= 1
        self._cursor = min(self._cursor, len(self._drafts) - 1)
        return removed

    def set_cursor(self, index: int) -> None:
        self._check_index(index)
        self._cursor = index

    def update_current(self, patch: BusinessDraftPatch | dict) -> BusinessDraft:
        """Merge a partial update into the draft at the cursor, and only that one."""
        return self._replace(self._cursor, patch)

    def update_by_id(self, draft_id: str, patch: BusinessDraftPatch | dict) -> BusinessDraft | None:
        """Merge into the draft with `draft_id`; None if it was removed meanwhile."""
        index = self.index_of(draft_id)
        if index is None:
            return None
        return self._replace(index, patch)

    def index_of(self, draft_id: str) -> int | None:
        for i, draft in enumerate(self._drafts):
            if draft.draft_id == draft_id:
                return i
        return None

    def _replace(self, index: int, patch: BusinessDraftPatch | dict) -> BusinessDraft:
        # Dicts only come from server code (lookup results, wizard helpers)
        if isinstance(patch, dict):
            patch = DraftUpdate.model_validate(patch)
        updated = self._drafts[index].merged(patch)
        self._drafts[index] = updated
        return updated

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._drafts):
            raise CollectionInvariantError(
                f"No business at position {index + 1} (have {len(self._drafts)})"
            )
