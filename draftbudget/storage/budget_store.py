"""Mini README: JSON file persistence for budget trees.

Structure:
    * BudgetStore - save, load and clear one budget file.
    * AutosaveObserver - subscribes to a tree and saves it after changes.

The budget core never decides when to persist itself. ``AutosaveObserver``
listens to mutation notifications, marks the budget dirty and writes it on
``flush()`` once the debounce interval since the last save has passed. A
flush that arrives too early schedules a trailing save for the end of the
interval, so a burst of edits produces at most two writes and the last edit
is always persisted.
"""

from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..budget import BudgetLine, MutationEvent
from ..configuration import DraftBudgetSettings, get_settings
from ..currency import CurrencyResolver
from ..logging_utils import get_logger
from ..serialization import export_json, line_from_json

LOGGER = get_logger(__name__)


class BudgetStore:
    """Persist a budget tree as a JSON record on disk."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else get_settings().budget_path
        LOGGER.debug("Budget store using %s", self.path)

    def exists(self) -> bool:
        """Whether a saved budget file is present."""

        return self.path.is_file()

    def save(self, line: BudgetLine) -> Path:
        """Write ``line``'s root and return the file path."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        temporary = self.path.with_suffix(self.path.suffix + ".tmp")
        temporary.write_text(export_json(line.root), encoding="utf-8")
        temporary.replace(self.path)
        LOGGER.info("Budget saved to %s", self.path)
        return self.path

    def load(
        self,
        *,
        settings: Optional[DraftBudgetSettings] = None,
        resolver: Optional[CurrencyResolver] = None,
    ) -> Optional[BudgetLine]:
        """Return the saved budget, ``None`` if nothing was saved yet.

        Raises ``ValueError`` when the file exists but is not a valid budget.
        """

        if not self.exists():
            LOGGER.debug("No saved budget at %s", self.path)
            return None
        text = self.path.read_text(encoding="utf-8")
        try:
            line = line_from_json(text, settings=settings, resolver=resolver)
        except (ValidationError, json.JSONDecodeError) as error:
            raise ValueError(f"Saved budget at {self.path} is invalid: {error}") from error
        LOGGER.info("Budget loaded from %s", self.path)
        return line

    def clear(self) -> bool:
        """Delete the saved budget; returns ``False`` when nothing was saved."""

        if not self.exists():
            return False
        self.path.unlink()
        LOGGER.info("Budget data cleared from %s", self.path)
        return True


class AutosaveObserver:
    """Save a budget tree after it changes, at most once per debounce interval."""

    def __init__(self, store: BudgetStore, line: BudgetLine, debounce_seconds: Optional[float] = None) -> None:
        self.store = store
        self.line = line.root
        self.debounce_seconds = (
            debounce_seconds if debounce_seconds is not None else self.line.settings.autosave_debounce_seconds
        )
        self.dirty = False
        self._last_saved: Optional[float] = None
        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self.line.subscribe(self._on_mutation)

    @property
    def save_scheduled(self) -> bool:
        """Whether a trailing save is waiting for the debounce interval to end."""

        return self._timer is not None

    def _on_mutation(self, event: MutationEvent) -> None:
        """Mark the budget dirty after any mutation in the tree."""

        self.dirty = True
        LOGGER.debug("Budget marked dirty by %s on line %s", event.kind.value, event.line.index)

    def flush(self, force: bool = False) -> bool:
        """Save when dirty and the debounce interval has elapsed (or ``force``).

        A deferred flush schedules a trailing save for the remainder of the
        interval; returns ``True`` only when the budget was written now.
        """

        with self._lock:
            if not self.dirty:
                return False
            now = time.monotonic()
            if not force and self._last_saved is not None:
                remaining = self.debounce_seconds - (now - self._last_saved)
                if remaining > 0:
                    self._schedule(remaining)
                    return False
            self._cancel_timer()
            self.store.save(self.line)
            self.dirty = False
            self._last_saved = now
            return True

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until a scheduled trailing save has run."""

        timer = self._timer
        if timer is not None:
            timer.join(timeout)

    def close(self) -> None:
        """Write any pending edits and stop listening to the tree."""

        self.flush(force=True)
        with self._lock:
            self._cancel_timer()
        self.line.unsubscribe(self._on_mutation)

    def _schedule(self, delay: float) -> None:
        """Start the trailing-save timer unless one is already waiting."""

        if self._timer is not None:
            return
        self._timer = threading.Timer(delay, self._trailing_save)
        self._timer.daemon = True
        self._timer.start()
        LOGGER.debug("Trailing save scheduled in %.2fs", delay)

    def _trailing_save(self) -> None:
        with self._lock:
            if self._timer is threading.current_thread():
                self._timer = None
            self.flush(force=True)

    def _cancel_timer(self) -> None:
        """Stop a waiting trailing save."""

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
