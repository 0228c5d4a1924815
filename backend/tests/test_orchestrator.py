import asyncio

import pytest

from deliverytracker.core.errors import (
    InvalidTransition,
    NotFound,
    RemoteUnavailable,
    UniquenessConflict,
)
from deliverytracker.sync.orchestrator import SyncOrchestrator
from fakes import FIXED_NOW, FakeRemoteStore

BACKUP_KEY = "active-deliveries:owner-1"


class GatedRemoteStore(FakeRemoteStore):
    """Holds selects and inserts until ``gate`` is set."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()

    async def select(self, table, owner_id):
        await self.gate.wait()
        return await super().select(table, owner_id)

    async def insert(self, table, owner_id, payload):
        await self.gate.wait()
        return await super().insert(table, owner_id, payload)


def _row(dr_number, status="In Transit", **extra):
    return {"dr_number": dr_number, "customer_name": "Acme", "status": status, "user_id": "owner-1", **extra}


@pytest.mark.anyio
async def test_load_partitions_remote_rows_and_writes_backup(orchestrator, remote, cache):
    remote.seed("deliveries", _row("DR1", "Delivered"))
    remote.seed("deliveries", _row("DR2", "In Transit"))
    remote.seed("deliveries", {**_row("DR3"), "user_id": "someone-else"})

    snapshot = await orchestrator.load()

    assert [r["drNumber"] for r in snapshot.active] == ["DR2"]
    assert [r["drNumber"] for r in snapshot.history] == ["DR1"]
    backup = await cache.get(BACKUP_KEY)
    assert [r["drNumber"] for r in backup] == ["DR2"]


@pytest.mark.anyio
async def test_load_falls_back_to_cached_backup(orchestrator, remote, cache):
    await cache.set(
        BACKUP_KEY,
        [
            {"id": "a", "drNumber": "DR1", "status": "In Transit"},
            {"id": "b", "drNumber": "DR2", "status": "Pending"},
        ],
    )
    remote.unreachable = True

    snapshot = await orchestrator.load()

    assert len(snapshot.active) == 2
    assert snapshot.history == []
    assert len(orchestrator.store.active) == 2


@pytest.mark.anyio
async def test_load_without_remote_or_backup_is_empty(cache):
    orchestrator = SyncOrchestrator("owner-1", remote=None, cache=cache)
    snapshot = await orchestrator.load()
    assert snapshot.active == [] and snapshot.history == []


@pytest.mark.anyio
async def test_concurrent_loads_share_one_fetch(cache):
    remote = GatedRemoteStore()
    remote.seed("deliveries", _row("DR1"))
    orchestrator = SyncOrchestrator("owner-1", remote=remote, cache=cache)

    first = asyncio.create_task(orchestrator.load())
    await asyncio.sleep(0)
    second = asyncio.create_task(orchestrator.load())
    await asyncio.sleep(0)
    remote.gate.set()

    assert await first is await second
    assert remote.calls.count(("select", "deliveries")) == 1


@pytest.mark.anyio
async def test_add_applies_defaults(orchestrator, remote):
    saved = await orchestrator.add({"drNumber": "DR001", "customerName": "Acme"})

    assert saved["status"] == "On Schedule"
    assert saved["additionalCosts"] == 0.0
    assert saved["userId"] == "owner-1"
    assert saved["createdAt"] == "2024-01-05T10:00:00.000Z"
    assert orchestrator.store.active[0]["id"] == saved["id"]
    assert remote.tables["deliveries"][0]["dr_number"] == "DR001"


@pytest.mark.anyio
async def test_add_generates_dr_number_when_missing(orchestrator):
    saved = await orchestrator.add({"customerName": "Acme"})
    assert saved["drNumber"] == "DR240105-800000"


@pytest.mark.anyio
async def test_add_disambiguates_existing_dr_number(orchestrator, remote):
    remote.seed("deliveries", _row("DR001"))

    saved = await orchestrator.add({"drNumber": "DR001", "customerName": "Acme"})

    assert saved["drNumber"] != "DR001"
    assert saved["drNumber"] == f"DR001-{int(FIXED_NOW.timestamp() * 1000)}"


@pytest.mark.anyio
async def test_add_retries_once_on_uniqueness_race(orchestrator, remote):
    remote.forced_conflicts = 1

    saved = await orchestrator.add({"drNumber": "DR001", "customerName": "Acme"})

    assert saved["drNumber"].startswith("DR001-")
    assert remote.calls.count(("insert", "deliveries")) == 2


@pytest.mark.anyio
async def test_add_surfaces_repeated_uniqueness_conflict(orchestrator, remote):
    remote.forced_conflicts = 2

    with pytest.raises(UniquenessConflict):
        await orchestrator.add({"drNumber": "DR001", "customerName": "Acme"})
    assert orchestrator.store.active == []


@pytest.mark.anyio
async def test_add_in_history_status_stamps_completion(orchestrator):
    saved = await orchestrator.add({"drNumber": "DR5", "customerName": "Acme", "status": "delivered"})

    assert saved["status"] == "Delivered"
    assert saved["completedAt"] == "2024-01-05T10:00:00.000Z"
    assert orchestrator.store.history[0]["id"] == saved["id"]


@pytest.mark.anyio
async def test_offline_add_is_queued_and_replayed(orchestrator, remote):
    remote.unreachable = True

    with pytest.raises(RemoteUnavailable) as excinfo:
        await orchestrator.add({"drNumber": "DR001", "customerName": "Acme"})

    assert excinfo.value.queued
    assert excinfo.value.record["id"].startswith("local-")
    assert len(orchestrator.queue) == 1

    remote.unreachable = False
    result = await orchestrator.drain_queue()

    assert result.processed == 1
    assert result.remaining == 0
    assert remote.tables["deliveries"][0]["dr_number"] == "DR001"
    assert orchestrator.store.active[0]["drNumber"] == "DR001"


@pytest.mark.anyio
async def test_update_of_queued_insert_replays_against_persisted_id(orchestrator, remote):
    remote.unreachable = True
    with pytest.raises(RemoteUnavailable) as excinfo:
        await orchestrator.add({"drNumber": "DR001", "customerName": "Acme"})
    local_id = excinfo.value.record["id"]
    with pytest.raises(RemoteUnavailable):
        await orchestrator.update(local_id, {"truckPlateNumber": "ABC-123"})

    remote.unreachable = False
    result = await orchestrator.drain_queue()

    assert result.processed == 2
    row = remote.tables["deliveries"][0]
    assert row["truck_plate_number"] == "ABC-123"
    assert orchestrator.store.find(row["id"])["truckPlateNumber"] == "ABC-123"


@pytest.mark.anyio
async def test_drain_without_remote_is_deferred(cache):
    orchestrator = SyncOrchestrator("owner-1", remote=None, cache=cache)
    result = await orchestrator.drain_queue()
    assert result.deferred
    assert result.processed == 0


@pytest.mark.anyio
async def test_update_status_moves_record_to_history(orchestrator, remote):
    row = remote.seed("deliveries", _row("DR1", "In Transit"))
    await orchestrator.load()

    saved = await orchestrator.update_status(row["id"], "Completed")

    assert saved["status"] == "Completed"
    assert saved["completedAt"] == "2024-01-05T10:00:00.000Z"
    assert saved["completedDate"] == "1/5/2024"
    assert orchestrator.store.active == []
    assert orchestrator.store.history[0]["id"] == row["id"]
    assert remote.tables["deliveries"][0]["status"] == "Completed"


@pytest.mark.anyio
async def test_update_status_errors(orchestrator, remote):
    row = remote.seed("deliveries", _row("DR1"))
    await orchestrator.load()

    with pytest.raises(NotFound):
        await orchestrator.update_status("missing", "Completed")
    with pytest.raises(InvalidTransition):
        await orchestrator.update_status(row["id"], "Misplaced")


@pytest.mark.anyio
async def test_offline_update_is_mirrored_and_queued(orchestrator, remote):
    row = remote.seed("deliveries", _row("DR1", "In Transit"))
    await orchestrator.load()
    remote.unreachable = True

    with pytest.raises(RemoteUnavailable) as excinfo:
        await orchestrator.update_status(row["id"], "Signed")

    assert excinfo.value.queued
    assert orchestrator.store.history[0]["status"] == "Signed"
    assert orchestrator.queue.pending[0].record_id == row["id"]


@pytest.mark.anyio
async def test_remove(orchestrator, remote):
    row = remote.seed("deliveries", _row("DR1"))
    await orchestrator.load()

    await orchestrator.remove(row["id"])

    assert orchestrator.store.active == []
    assert remote.tables["deliveries"] == []
    with pytest.raises(NotFound):
        await orchestrator.remove(row["id"])


@pytest.mark.anyio
async def test_import_reports_duplicate_serial_per_row(orchestrator):
    report = await orchestrator.import_many(
        [
            {"drNumber": "DR100", "customerName": "A", "serialNumber": "SN1"},
            {"drNumber": "DR101", "customerName": "B", "serialNumber": "SN1"},
            {"drNumber": "DR102", "customerName": "C", "serialNumber": "SN2"},
        ]
    )

    assert report.success == 2
    assert report.failed == 1
    assert report.errors[0]["row"] == 2
    assert report.errors[0]["record"]["drNumber"] == "DR101"
    assert "SN1" in report.errors[0]["message"]
    assert len(orchestrator.store.active) == 2


@pytest.mark.anyio
async def test_import_rejects_missing_fields_and_active_serials(orchestrator, remote):
    remote.seed("deliveries", _row("DR1", serial_number="SN9"))
    await orchestrator.load()

    report = await orchestrator.import_many(
        [
            {"dr_number": "DR200", "customer_name": "A", "serial_number": 12345},
            {"drNumber": "DR201"},
            {"drNumber": "DR202", "customerName": "B", "serialNumber": "sn9"},
        ]
    )

    assert report.success == 1
    assert [error["row"] for error in report.errors] == [2, 3]
    assert "customerName" in report.errors[0]["message"]
    assert remote.tables["deliveries"][0]["serial_number"] == "12345"


@pytest.mark.anyio
async def test_reentrant_import_is_a_no_op(cache):
    remote = GatedRemoteStore()
    orchestrator = SyncOrchestrator("owner-1", remote=remote, cache=cache)

    first = asyncio.create_task(
        orchestrator.import_many([{"drNumber": "DR1", "customerName": "A"}])
    )
    await asyncio.sleep(0)
    second = await orchestrator.import_many([{"drNumber": "DR2", "customerName": "B"}])
    remote.gate.set()
    report = await first

    assert second.in_progress
    assert second.success == 0 and second.failed == 0
    assert report.success == 1
    assert len(remote.tables["deliveries"]) == 1


@pytest.mark.anyio
async def test_change_events_move_records_between_buckets(orchestrator, cache):
    await orchestrator.apply_change("INSERT", "deliveries", new=_row("DR1", "Delivered", id="r1"))
    assert orchestrator.store.history[0]["id"] == "r1"

    await orchestrator.apply_change("UPDATE", "deliveries", new=_row("DR1", "In Transit", id="r1"))
    assert orchestrator.store.history == []
    assert orchestrator.store.active[0]["id"] == "r1"
    assert (await cache.get(BACKUP_KEY))[0]["id"] == "r1"

    await orchestrator.apply_change("UPDATE", "deliveries", new={**_row("DR9", id="r9"), "user_id": "other"})
    assert orchestrator.store.find("r9") is None

    await orchestrator.apply_change("DELETE", "deliveries", old={"id": "r1"})
    assert orchestrator.store.active == []


@pytest.mark.anyio
async def test_customer_operations(orchestrator, remote, cache):
    saved = await orchestrator.add_customer({"name": "Acme", "mobileNumber": "0917"})
    assert saved["mobileNumber"] == "0917"
    assert remote.tables["customers"][0]["mobile_number"] == "0917"

    updated = await orchestrator.update_customer(saved["id"], {"address": "Cebu"})
    assert updated["address"] == "Cebu"
    assert orchestrator.store.find_customer(saved["id"])["address"] == "Cebu"

    remote.unreachable = True
    customers = await orchestrator.load_customers()
    assert [c["name"] for c in customers] == ["Acme"]

    remote.unreachable = False
    with pytest.raises(NotFound):
        await orchestrator.update_customer("missing", {"address": "x"})


@pytest.mark.anyio
async def test_customer_change_events(orchestrator):
    await orchestrator.apply_change("INSERT", "customers", new={"id": "c1", "name": "Acme", "user_id": "owner-1"})
    assert orchestrator.store.find_customer("c1")["name"] == "Acme"
    await orchestrator.apply_change("DELETE", "customers", old={"id": "c1"})
    assert orchestrator.store.customers == []


@pytest.mark.anyio
async def test_update_with_status_goes_through_transition_rules(orchestrator, remote):
    row = remote.seed("deliveries", _row("DR1", "In Transit"))
    await orchestrator.load()

    saved = await orchestrator.update(row["id"], {"status": "completed", "truckPlateNumber": "ABC-123"})

    assert saved["status"] == "Completed"
    assert saved["completedAt"] == "2024-01-05T10:00:00.000Z"
    assert saved["truckPlateNumber"] == "ABC-123"
    assert orchestrator.store.active == []
    assert orchestrator.store.history[0]["id"] == row["id"]
    assert remote.tables["deliveries"][0]["completed_at"] is not None

    with pytest.raises(InvalidTransition):
        await orchestrator.update(row["id"], {"status": "Teleported"})
    assert orchestrator.store.history[0]["status"] == "Completed"


@pytest.mark.anyio
async def test_reopening_through_update_clears_completion(orchestrator, remote):
    row = remote.seed("deliveries", _row("DR1", "Delivered", completed_at="2024-01-01T00:00:00Z"))
    await orchestrator.load()

    saved = await orchestrator.update(row["id"], {"status": "In Transit"})

    assert saved["completedAt"] is None
    assert orchestrator.store.active[0]["id"] == row["id"]


@pytest.mark.anyio
async def test_conflict_retry_suffixes_the_original_dr_number_once(orchestrator, remote):
    remote.seed("deliveries", _row("DR001"))
    remote.forced_conflicts = 1
    millis = int(FIXED_NOW.timestamp() * 1000)

    saved = await orchestrator.add({"drNumber": "DR001", "customerName": "Acme"})

    assert saved["drNumber"] == f"DR001-{millis + 1}"
    assert saved["drNumber"].count("-") == 1


@pytest.mark.anyio
async def test_offline_import_counts_rows_as_queued(orchestrator, remote):
    remote.unreachable = True

    report = await orchestrator.import_many(
        [
            {"drNumber": "DR300", "customerName": "A", "serialNumber": "SN1"},
            {"drNumber": "DR301", "customerName": "B", "serialNumber": "sn1"},
            {"drNumber": "DR302", "customerName": "C", "serialNumber": "SN2"},
        ]
    )

    assert report.queued == 2
    assert report.success == 0
    assert report.failed == 1
    assert report.errors[0]["row"] == 2
    assert report.as_dict()["queued"] == 2
    assert len(orchestrator.queue) == 2

    remote.unreachable = False
    result = await orchestrator.drain_queue()
    assert result.processed == 2
    assert {row["dr_number"] for row in remote.tables["deliveries"]} == {"DR300", "DR302"}


@pytest.mark.anyio
async def test_forced_drain_replays_inside_backoff_window(orchestrator, remote):
    remote.unreachable = True
    with pytest.raises(RemoteUnavailable):
        await orchestrator.add({"drNumber": "DR001", "customerName": "Acme"})
    failed = await orchestrator.drain_queue()
    assert failed.failed is not None
    assert failed.retry_after > 0

    remote.unreachable = False
    early = await orchestrator.drain_queue()
    assert early.deferred
    assert early.processed == 0

    forced = await orchestrator.drain_queue(force=True)
    assert forced.processed == 1
    assert forced.remaining == 0
    assert forced.retry_after is None
    assert remote.tables["deliveries"][0]["dr_number"] == "DR001"
