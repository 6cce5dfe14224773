"""Tests for the schedule stores."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest
import yaml
from pydantic import ValidationError

from loanledger.errors import (
    DuplicateScheduleError,
    PaymentEntryNotFoundError,
    ScheduleNotFoundError,
    StorageError,
)
from loanledger.store import InMemoryScheduleStore, YamlScheduleStore
from loanledger.types import PaymentStatus
from tests.conftest import make_schedule, three_month_entries


async def _seed(store, liability_id="mortgage"):
    schedule = await store.create_schedule(make_schedule(liability_id))
    entries = [e.model_copy(update={"schedule_id": schedule.id}) for e in three_month_entries()]
    await store.create_payment_entries(entries)
    return schedule


class TestInMemoryScheduleStore:
    """Tests for the dictionary-backed store."""

    def test_create_assigns_id(self, store):
        schedule = asyncio.run(store.create_schedule(make_schedule()))

        assert schedule.id
        assert asyncio.run(store.get_schedule(schedule.id)) == schedule

    def test_one_schedule_per_liability(self, store):
        """A second schedule for the same liability is refused."""
        asyncio.run(store.create_schedule(make_schedule("mortgage")))

        with pytest.raises(DuplicateScheduleError):
            asyncio.run(store.create_schedule(make_schedule("mortgage")))

        assert len(asyncio.run(store.list_schedules())) == 1

    def test_entries_listed_in_sequence_order(self, store):
        schedule = asyncio.run(store.create_schedule(make_schedule()))
        entries = [
            e.model_copy(update={"schedule_id": schedule.id})
            for e in reversed(three_month_entries())
        ]
        asyncio.run(store.create_payment_entries(entries))

        listed = asyncio.run(store.list_payment_entries(schedule.id))

        assert [e.sequence_number for e in listed] == [1, 2, 3]
        assert all(e.id for e in listed)
        assert len({e.id for e in listed}) == 3

    def test_list_entries_of_unknown_schedule(self, store):
        assert asyncio.run(store.list_payment_entries("missing")) == []

    def test_entries_for_unknown_schedule_rejected(self, store):
        """No entry is stored when any entry references an unknown schedule."""
        schedule = asyncio.run(store.create_schedule(make_schedule()))
        entries = three_month_entries()
        entries[0] = entries[0].model_copy(update={"schedule_id": schedule.id})
        entries[1] = entries[1].model_copy(update={"schedule_id": "missing"})

        with pytest.raises(ScheduleNotFoundError):
            asyncio.run(store.create_payment_entries(entries))

        assert asyncio.run(store.list_payment_entries(schedule.id)) == []

    def test_update_payment_entry(self, store):
        schedule = asyncio.run(_seed(store))
        entry = asyncio.run(store.list_payment_entries(schedule.id))[0]

        asyncio.run(
            store.update_payment_entry(
                entry.id,
                {
                    "status": PaymentStatus.PAID,
                    "actual_date": date(2024, 2, 14),
                    "actual_amount": Decimal("335.00"),
                },
            )
        )

        updated = asyncio.run(store.list_payment_entries(schedule.id))[0]
        assert updated.status == PaymentStatus.PAID
        assert updated.actual_date == date(2024, 2, 14)

    def test_invalid_patch_leaves_entry_unchanged(self, store):
        """Actuals on an unpaid entry fail validation and change nothing."""
        schedule = asyncio.run(_seed(store))
        entry = asyncio.run(store.list_payment_entries(schedule.id))[0]

        with pytest.raises(ValidationError):
            asyncio.run(store.update_payment_entry(entry.id, {"actual_date": date(2024, 2, 1)}))

        assert asyncio.run(store.list_payment_entries(schedule.id))[0] == entry

    def test_update_unknown_entry(self, store):
        with pytest.raises(PaymentEntryNotFoundError):
            asyncio.run(store.update_payment_entry("missing", {"notes": "x"}))

    def test_update_schedule(self, store):
        schedule = asyncio.run(store.create_schedule(make_schedule()))

        updated = asyncio.run(store.update_schedule(schedule.id, {"payments_made": 2}))

        assert updated.payments_made == 2
        assert asyncio.run(store.get_schedule(schedule.id)).payments_made == 2

    def test_update_unknown_schedule(self, store):
        with pytest.raises(ScheduleNotFoundError):
            asyncio.run(store.update_schedule("missing", {"payments_made": 1}))

    def test_returned_models_are_copies(self, store):
        """Changing a returned schedule does not change the stored one."""
        schedule = asyncio.run(store.create_schedule(make_schedule()))
        schedule.notes = "changed"

        assert asyncio.run(store.get_schedule(schedule.id)).notes is None

    def test_get_schedule_for_liability(self, store):
        asyncio.run(_seed(store, "car"))
        asyncio.run(_seed(store, "mortgage"))

        found = asyncio.run(store.get_schedule_for_liability("mortgage"))

        assert found.liability_id == "mortgage"
        assert asyncio.run(store.get_schedule_for_liability("boat")) is None
        assert [s.liability_id for s in asyncio.run(store.list_schedules())] == [
            "car",
            "mortgage",
        ]

    def test_delete_removes_entries(self, store):
        """Deleting a schedule leaves no entries referencing it."""
        schedule = asyncio.run(_seed(store))
        other = asyncio.run(_seed(store, "car"))

        asyncio.run(store.delete_schedule(schedule.id))

        assert asyncio.run(store.get_schedule(schedule.id)) is None
        assert asyncio.run(store.list_payment_entries(schedule.id)) == []
        assert len(asyncio.run(store.list_payment_entries(other.id))) == 3

    def test_delete_unknown_schedule(self, store):
        with pytest.raises(ScheduleNotFoundError):
            asyncio.run(store.delete_schedule("missing"))

    def test_failed_persist_keeps_previous_state(self):
        """State is only replaced once it has been persisted."""

        class FailingStore(InMemoryScheduleStore):
            fail = False

            def _persist(self, schedules, entries):
                if self.fail:
                    raise StorageError("disk full")

        store = FailingStore()
        schedule = asyncio.run(_seed(store))
        store.fail = True

        with pytest.raises(StorageError):
            asyncio.run(store.delete_schedule(schedule.id))

        assert asyncio.run(store.get_schedule(schedule.id)) is not None
        assert len(asyncio.run(store.list_payment_entries(schedule.id))) == 3


class TestYamlScheduleStore:
    """Tests for the YAML file store."""

    def test_missing_file_starts_empty(self, tmp_path):
        store = YamlScheduleStore(tmp_path / "ledger.yaml")

        assert asyncio.run(store.list_schedules()) == []
        assert not (tmp_path / "ledger.yaml").exists()

    def test_state_survives_reload(self, tmp_path):
        """A second store on the same file sees the same schedules and entries."""
        path = tmp_path / "ledger.yaml"
        schedule = asyncio.run(_seed(YamlScheduleStore(path)))

        reloaded = YamlScheduleStore(path)

        assert asyncio.run(reloaded.get_schedule(schedule.id)) == schedule
        entries = asyncio.run(reloaded.list_payment_entries(schedule.id))
        assert [e.principal_portion for e in entries] == [
            Decimal("330.00"),
            Decimal("331.65"),
            Decimal("338.35"),
        ]

    def test_file_layout(self, tmp_path):
        """The document holds a version, the schedules and the payments."""
        path = tmp_path / "ledger.yaml"
        asyncio.run(_seed(YamlScheduleStore(path)))

        with open(path) as f:
            document = yaml.safe_load(f)

        assert document["version"] == "1.0"
        assert document["schedules"][0]["liability_id"] == "mortgage"
        assert len(document["payments"]) == 3
        assert document["payments"][0]["scheduled_date"] == "2024-02-15"
        assert [p.name for p in tmp_path.iterdir()] == ["ledger.yaml"]

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "data" / "ledger.yaml"

        asyncio.run(YamlScheduleStore(path).create_schedule(make_schedule()))

        assert path.exists()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text("")

        assert asyncio.run(YamlScheduleStore(path).list_schedules()) == []

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text("schedules: [unclosed")

        with pytest.raises(StorageError, match="Cannot read store file"):
            YamlScheduleStore(path)

    def test_invalid_document(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text(yaml.safe_dump({"schedules": [{"liability_id": "x"}]}))

        with pytest.raises(StorageError, match="Invalid store file"):
            YamlScheduleStore(path)

    def test_unwritable_location(self, tmp_path):
        """Write failures surface as StorageError and leave the store unchanged."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = YamlScheduleStore(blocker / "ledger.yaml")

        with pytest.raises(StorageError, match="Cannot write store file"):
            asyncio.run(store.create_schedule(make_schedule()))

        assert asyncio.run(store.list_schedules()) == []

    def test_failed_replace_removes_temp_file(self, tmp_path, monkeypatch):
        """A write that fails after the temp file exists leaves only the store file."""
        path = tmp_path / "ledger.yaml"
        store = YamlScheduleStore(path)
        asyncio.run(store.create_schedule(make_schedule("car")))

        def fail_replace(src, dst):
            raise OSError("device busy")

        monkeypatch.setattr("loanledger.store.os.replace", fail_replace)

        with pytest.raises(StorageError, match="device busy"):
            asyncio.run(store.create_schedule(make_schedule("mortgage")))

        assert [p.name for p in tmp_path.iterdir()] == ["ledger.yaml"]
        assert [s.liability_id for s in asyncio.run(store.list_schedules())] == ["car"]
