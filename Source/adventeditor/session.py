"""
Editor session for the 24 numbered texts.

Holds the loaded records, the selected slot and the draft title/content being
edited, and drives load/save/delete against the remote store. Only one of
load, save or delete may be outstanding at a time; overlapping calls raise
SessionBusyError instead of running.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .api import TransportError
from .config import SAVE_MODE_FALLBACK, SAVE_MODE_UPSERT, SAVE_MODES
from .export import ExportedFile, export_filename, markdown_document
from .models import SLOT_COUNT, TextRecord, default_title, validate_slot


logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Session activity states."""
    IDLE = "idle"
    LOADING = "loading"
    SAVING = "saving"


class SessionBusyError(RuntimeError):
    pass


class SessionObserver:
    """Interface for session observers."""

    def on_state_changed(self, state: SessionState) -> None:
        """Called when the session starts or finishes a remote operation."""
        pass

    def on_records_changed(self, records: Dict[int, TextRecord]) -> None:
        """Called with a snapshot after the record set changed."""
        pass

    def on_draft_reset(self, slot: int, title: str, content: str) -> None:
        """Called when the draft fields were replaced from the record set."""
        pass

    def on_error(self, operation: str, error: Exception) -> None:
        """Called when load, save or delete failed."""
        pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EditorSession:
    """
    In-memory editing state plus the save/delete policy.

    Args:
        store: object with list_all/insert/update/delete/upsert (TextStoreAPI)
        save_mode: "fallback" tries insert then update; "upsert" issues a
            single atomic upsert
        clock: returns the current time; used for updated_at and last_saved_at
    """

    def __init__(self, store, save_mode: str = SAVE_MODE_FALLBACK,
                 clock: Optional[Callable[[], datetime]] = None):
        if save_mode not in SAVE_MODES:
            raise ValueError(f"Unknown save mode: {save_mode!r}")
        self._store = store
        self._save_mode = save_mode
        self._clock = clock or _utcnow

        self._records: Dict[int, TextRecord] = {}
        self._selected = 1
        self._draft_title = default_title(1)
        self._draft_content = ""
        self.last_saved_at: Optional[datetime] = None

        self._state = SessionState.IDLE
        self._lock = threading.Lock()
        self._observers: List[SessionObserver] = []

    # --- Observers ---
    def add_observer(self, observer: SessionObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: SessionObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self, method: str, *args) -> None:
        for observer in list(self._observers):
            try:
                getattr(observer, method)(*args)
            except Exception as e:
                logger.error(f"Observer notification failed: {e}")

    # --- Accessors ---
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is not SessionState.IDLE

    @property
    def save_mode(self) -> str:
        return self._save_mode

    @property
    def selected_slot(self) -> int:
        return self._selected

    @property
    def records(self) -> Dict[int, TextRecord]:
        return dict(self._records)

    def record(self, slot: int) -> Optional[TextRecord]:
        return self._records.get(validate_slot(slot))

    def has_content(self, slot: int) -> bool:
        rec = self._records.get(slot)
        return bool(rec and rec.content)

    @property
    def draft_title(self) -> str:
        return self._draft_title

    @draft_title.setter
    def draft_title(self, value: str) -> None:
        self._draft_title = value or ""

    @property
    def draft_content(self) -> str:
        return self._draft_content

    @draft_content.setter
    def draft_content(self, value: str) -> None:
        self._draft_content = value or ""

    @property
    def dirty(self) -> bool:
        title, content = self._defaults_for(self._selected)
        return (self._draft_title, self._draft_content) != (title, content)

    # --- Selection ---
    def select_slot(self, slot: int) -> None:
        """Open ``slot`` for editing. Unsaved drafts of the previous slot are dropped."""
        validate_slot(slot)
        if self.dirty:
            logger.debug("Discarding unsaved edits of slot %d", self._selected)
        self._selected = slot
        self._reset_drafts()

    def _defaults_for(self, slot: int) -> Tuple[str, str]:
        rec = self._records.get(slot)
        if rec is None:
            return default_title(slot), ""
        return rec.title or default_title(slot), rec.content or ""

    def _reset_drafts(self) -> None:
        self._draft_title, self._draft_content = self._defaults_for(self._selected)
        self._notify("on_draft_reset", self._selected, self._draft_title, self._draft_content)

    # --- Single-flight guard ---
    def _set_state(self, state: SessionState) -> None:
        if self._state != state:
            old_state = self._state
            self._state = state
            logger.debug(f"Session state changed: {old_state.value} -> {state.value}")
            self._notify("on_state_changed", state)

    @contextmanager
    def _operation(self, state: SessionState) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise SessionBusyError(f"Another operation is running ({self._state.value})")
        try:
            self._set_state(state)
            yield
        finally:
            self._set_state(SessionState.IDLE)
            self._lock.release()

    # --- Remote operations ---
    def load_all(self) -> Dict[int, TextRecord]:
        """Replace the record set with the backend's rows.

        On failure the previous records stay untouched and the error is
        re-raised. Drafts of the selected slot are reset from the new rows.
        """
        with self._operation(SessionState.LOADING):
            try:
                self._reload()
            except TransportError as e:
                logger.error("Loading texts failed: %s", e)
                self._notify("on_error", "load", e)
                raise
        return self.records

    def _reload(self, reset_drafts: bool = True) -> None:
        rows = self._store.list_all()
        records: Dict[int, TextRecord] = {}
        for rec in rows:
            if not 1 <= rec.slot_number <= SLOT_COUNT:
                logger.warning("Ignoring row with out-of-range slot %s", rec.slot_number)
                continue
            records[rec.slot_number] = rec
        self._records = records
        logger.info("Loaded %d text(s)", len(records))
        self._notify("on_records_changed", self.records)
        if reset_drafts:
            self._reset_drafts()

    def save(self) -> Optional[TextRecord]:
        """Persist the drafts of the selected slot.

        Returns None without contacting the store when title and content are
        both blank. Otherwise writes the record, re-fetches the full record
        set and returns the persisted record. Drafts are kept on failure.
        """
        if not self._draft_title.strip() and not self._draft_content.strip():
            logger.debug("Nothing to save for slot %d", self._selected)
            return None

        with self._operation(SessionState.SAVING):
            slot = self._selected
            record = TextRecord(
                slot_number=slot,
                title=self._draft_title,
                content=self._draft_content,
                updated_at=self._clock().isoformat(),
            )
            try:
                written, unconfirmed = self._write(record)
                self._sync_after_write(record, written, unconfirmed)
            except TransportError as e:
                logger.error("Saving text %d failed: %s", slot, e)
                self._notify("on_error", "save", e)
                raise
            self.last_saved_at = self._clock()
            logger.info("Saved text %d", slot)
            return self._records.get(slot, record)

    def _write(self, record: TextRecord) -> Tuple[Optional[TextRecord], Optional[TransportError]]:
        """Write ``record`` and return ``(representation, unconfirmed_error)``.

        ``unconfirmed_error`` is the rejected insert's error when the update
        fallback returned no row; it is raised if the re-fetch does not show
        the record either.
        """
        if self._save_mode == SAVE_MODE_UPSERT:
            return self._store.upsert(record), None
        try:
            return self._store.insert(record), None
        except TransportError as insert_error:
            logger.info(
                "Insert of text %d rejected (%s); falling back to update",
                record.slot_number, insert_error,
            )
            updated = self._store.update(record.slot_number, record.to_row())
            return updated, (insert_error if updated is None else None)

    def _sync_after_write(self, record: TextRecord, written: Optional[TextRecord],
                          unconfirmed: Optional[TransportError]) -> None:
        try:
            self._reload(reset_drafts=False)
        except TransportError as e:
            if unconfirmed is not None:
                # Nothing confirms the fallback update; do not pretend it landed
                logger.error(
                    "Text %d could not be confirmed and reloading failed (%s)",
                    record.slot_number, e,
                )
                raise unconfirmed
            logger.warning(
                "Text %d was written but reloading failed (%s); keeping local copy",
                record.slot_number, e,
            )
            self._records[record.slot_number] = written or record
            self._notify("on_records_changed", self.records)
            self._reset_drafts()
            return
        if unconfirmed is not None and not self._matches_stored(record):
            # Insert failed and the update matched no row: nothing was stored
            logger.error("Text %d was not changed by the update fallback", record.slot_number)
            raise unconfirmed
        self._reset_drafts()

    def _matches_stored(self, record: TextRecord) -> bool:
        stored = self._records.get(record.slot_number)
        if stored is None:
            return False
        return (stored.title, stored.content) == (record.title, record.content)

    def delete(self, confirm: Optional[Callable[[int], bool]]) -> bool:
        """Delete the selected slot's record after ``confirm(slot)`` agrees.

        Returns False when confirmation is missing or declined. Deleting a
        slot with no stored record succeeds.
        """
        if self.busy:
            raise SessionBusyError(f"Another operation is running ({self._state.value})")
        slot = self._selected
        if confirm is None or not confirm(slot):
            logger.debug("Delete of text %d not confirmed", slot)
            return False
        with self._operation(SessionState.SAVING):
            try:
                self._store.delete(slot)
            except TransportError as e:
                logger.error("Deleting text %d failed: %s", slot, e)
                self._notify("on_error", "delete", e)
                raise
            self._records.pop(slot, None)
            self.last_saved_at = self._clock()
            logger.info("Deleted text %d", slot)
            self._notify("on_records_changed", self.records)
            self._reset_drafts()
        return True

    # --- Export ---
    def export_current(self) -> ExportedFile:
        """Markdown file for the drafts as they are right now."""
        return ExportedFile(
            export_filename(self._draft_title),
            markdown_document(self._draft_title, self._draft_content),
        )

    def export_all(self) -> Iterator[ExportedFile]:
        """One markdown file per loaded record, in slot order."""
        snapshot = sorted(self._records.items())
        return iter([
            ExportedFile(export_filename(rec.title, slot), markdown_document(rec.title, rec.content))
            for slot, rec in snapshot
        ])
