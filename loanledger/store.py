"""Persistence of loan schedules and their payment entries.

``ScheduleStore`` is the asynchronous interface the reconciliation services
talk to. Two implementations are provided:

- ``InMemoryScheduleStore`` keeps everything in dictionaries (tests, embedding)
- ``YamlScheduleStore`` persists the same state to a single YAML document

Every mutating call is all-or-nothing: the new state is computed on a copy and
only swapped in once it has been persisted, so a failure never leaves a
schedule without its entries or entries without their schedule.
"""

import logging
import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from . import constants
from .errors import (
    DuplicateScheduleError,
    PaymentEntryNotFoundError,
    ScheduleNotFoundError,
    StorageError,
)
from .schema import LoanSchedule, PaymentEntry

logger = logging.getLogger(__name__)

Schedules = dict[str, LoanSchedule]
Entries = dict[str, PaymentEntry]


class ScheduleStore(ABC):
    """Abstract interface for schedule storage operations."""

    @abstractmethod
    async def create_schedule(self, schedule: LoanSchedule) -> LoanSchedule:
        """Persist a new schedule and assign its id.

        Raises:
            DuplicateScheduleError: If the liability already has a schedule
        """

    @abstractmethod
    async def create_payment_entries(self, entries: list[PaymentEntry]) -> None:
        """Persist payment entries; each must reference an existing schedule.

        Raises:
            ScheduleNotFoundError: If an entry references an unknown schedule
        """

    @abstractmethod
    async def list_payment_entries(self, schedule_id: str) -> list[PaymentEntry]:
        """Return a schedule's entries sorted by sequence_number (empty if none)."""

    @abstractmethod
    async def update_payment_entry(self, entry_id: str, patch: dict[str, Any]) -> None:
        """Apply a partial update to one entry.

        Raises:
            PaymentEntryNotFoundError: If the entry does not exist
        """

    @abstractmethod
    async def delete_schedule(self, schedule_id: str) -> None:
        """Delete a schedule together with all of its entries.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist
        """

    @abstractmethod
    async def get_schedule(self, schedule_id: str) -> Optional[LoanSchedule]:
        """Return a schedule by id, or None."""

    @abstractmethod
    async def get_schedule_for_liability(self, liability_id: str) -> Optional[LoanSchedule]:
        """Return the schedule owned by a liability, or None."""

    @abstractmethod
    async def update_schedule(self, schedule_id: str, patch: dict[str, Any]) -> LoanSchedule:
        """Apply a partial update to a schedule and return the result.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist
        """

    @abstractmethod
    async def list_schedules(self) -> list[LoanSchedule]:
        """Return every schedule, ordered by liability id."""


def _new_id() -> str:
    return uuid.uuid4().hex


def _patched(model: BaseModel, patch: dict[str, Any]) -> Any:
    """Return a validated copy of ``model`` with ``patch`` applied."""
    return type(model).model_validate({**model.model_dump(), **patch})


class InMemoryScheduleStore(ScheduleStore):
    """Dictionary-backed store.

    Returned models are copies; changing them does not change stored state.
    """

    def __init__(self):
        self._schedules: Schedules = {}
        self._entries: Entries = {}

    def _persist(self, schedules: Schedules, entries: Entries) -> None:
        """Hook for durable subclasses; called before new state is swapped in."""

    def _mutate(self, apply: Callable[[Schedules, Entries], Any]) -> Any:
        schedules = dict(self._schedules)
        entries = dict(self._entries)
        result = apply(schedules, entries)
        self._persist(schedules, entries)
        self._schedules, self._entries = schedules, entries
        return result

    async def create_schedule(self, schedule: LoanSchedule) -> LoanSchedule:
        def apply(schedules: Schedules, entries: Entries) -> LoanSchedule:
            if any(s.liability_id == schedule.liability_id for s in schedules.values()):
                raise DuplicateScheduleError(
                    f"Liability '{schedule.liability_id}' already has a payment schedule"
                )
            created = schedule.model_copy(update={"id": _new_id()}, deep=True)
            schedules[created.id] = created
            return created

        created = self._mutate(apply)
        logger.debug("Created schedule %s for liability %s", created.id, created.liability_id)
        return created.model_copy(deep=True)

    async def create_payment_entries(self, entries: list[PaymentEntry]) -> None:
        def apply(schedules: Schedules, stored: Entries) -> None:
            for entry in entries:
                if entry.schedule_id is None or entry.schedule_id not in schedules:
                    raise ScheduleNotFoundError(
                        f"Payment #{entry.sequence_number} references unknown schedule "
                        f"'{entry.schedule_id}'"
                    )
            for entry in entries:
                created = entry.model_copy(update={"id": _new_id()}, deep=True)
                stored[created.id] = created

        self._mutate(apply)
        logger.debug("Created %d payment entries", len(entries))

    async def list_payment_entries(self, schedule_id: str) -> list[PaymentEntry]:
        owned = [e for e in self._entries.values() if e.schedule_id == schedule_id]
        owned.sort(key=lambda e: e.sequence_number)
        return [e.model_copy(deep=True) for e in owned]

    async def update_payment_entry(self, entry_id: str, patch: dict[str, Any]) -> None:
        def apply(schedules: Schedules, entries: Entries) -> None:
            if entry_id not in entries:
                raise PaymentEntryNotFoundError(f"Payment entry '{entry_id}' not found")
            entries[entry_id] = _patched(entries[entry_id], patch)

        self._mutate(apply)

    async def delete_schedule(self, schedule_id: str) -> None:
        def apply(schedules: Schedules, entries: Entries) -> int:
            if schedule_id not in schedules:
                raise ScheduleNotFoundError(f"Schedule '{schedule_id}' not found")
            owned = [key for key, e in entries.items() if e.schedule_id == schedule_id]
            for key in owned:
                del entries[key]
            del schedules[schedule_id]
            return len(owned)

        removed = self._mutate(apply)
        logger.debug("Deleted schedule %s and %d payment entries", schedule_id, removed)

    async def get_schedule(self, schedule_id: str) -> Optional[LoanSchedule]:
        schedule = self._schedules.get(schedule_id)
        return schedule.model_copy(deep=True) if schedule else None

    async def get_schedule_for_liability(self, liability_id: str) -> Optional[LoanSchedule]:
        for schedule in self._schedules.values():
            if schedule.liability_id == liability_id:
                return schedule.model_copy(deep=True)
        return None

    async def update_schedule(self, schedule_id: str, patch: dict[str, Any]) -> LoanSchedule:
        def apply(schedules: Schedules, entries: Entries) -> LoanSchedule:
            if schedule_id not in schedules:
                raise ScheduleNotFoundError(f"Schedule '{schedule_id}' not found")
            schedules[schedule_id] = _patched(schedules[schedule_id], patch)
            return schedules[schedule_id]

        return self._mutate(apply).model_copy(deep=True)

    async def list_schedules(self) -> list[LoanSchedule]:
        ordered = sorted(self._schedules.values(), key=lambda s: s.liability_id)
        return [s.model_copy(deep=True) for s in ordered]


class StoreDocument(BaseModel):
    """Root structure of the YAML store file."""

    version: str = Field(constants.STORE_FILE_VERSION, description="Store file format version")
    schedules: list[LoanSchedule] = Field(default_factory=list, description="Loan schedules")
    payments: list[PaymentEntry] = Field(default_factory=list, description="Payment entries")


class YamlScheduleStore(InMemoryScheduleStore):
    """Store persisted to a single YAML file.

    The file is rewritten through a temporary file and ``os.replace`` so a
    crash mid-write leaves the previous document intact.
    """

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.is_file():
            logger.debug("Store file %s does not exist yet, starting empty", self.path)
            return

        try:
            with self.path.open() as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"Cannot read store file '{self.path}': {e}") from e

        if data is None:
            logger.warning("Empty store file: %s", self.path)
            return

        try:
            document = StoreDocument(**data)
        except (ValidationError, TypeError) as e:
            raise StorageError(f"Invalid store file '{self.path}': {e}") from e

        self._schedules = {s.id: s for s in document.schedules if s.id}
        self._entries = {e.id: e for e in document.payments if e.id}
        logger.debug(
            "Loaded %d schedules and %d payments from %s",
            len(self._schedules),
            len(self._entries),
            self.path,
        )

    def _persist(self, schedules: Schedules, entries: Entries) -> None:
        document = StoreDocument(
            schedules=sorted(schedules.values(), key=lambda s: s.liability_id),
            payments=sorted(
                entries.values(), key=lambda e: (e.schedule_id or "", e.sequence_number)
            ),
        )
        text = yaml.safe_dump(document.model_dump(mode="json"), sort_keys=False)

        directory = self.path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", dir=directory, prefix=f".{self.path.name}.", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(text)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Cannot write store file '{self.path}': {e}") from e
