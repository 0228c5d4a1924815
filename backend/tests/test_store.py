from deliverytracker.sync.partition import Bucket
from deliverytracker.sync.store import DeliveryStore


def test_upsert_moves_record_between_buckets():
    store = DeliveryStore()
    store.replace([{"id": "a", "status": "Pending"}, {"id": "b", "status": "In Transit"}])

    assert store.upsert({"id": "a", "status": "Delivered"}) is Bucket.HISTORY

    assert [r["id"] for r in store.active] == ["b"]
    assert [r["id"] for r in store.history] == ["a"]


def test_upsert_replaces_in_place_within_bucket():
    store = DeliveryStore()
    store.replace([{"id": "a", "status": "Pending"}, {"id": "b", "status": "Pending"}])

    store.upsert({"id": "b", "status": "In Transit", "note": "x"})

    assert [r["id"] for r in store.active] == ["a", "b"]
    assert store.find("b")["note"] == "x"


def test_new_records_go_to_the_front():
    store = DeliveryStore()
    store.replace([{"id": "a", "status": "Pending"}])
    store.upsert({"id": "c", "status": "Pending"})
    assert [r["id"] for r in store.active] == ["c", "a"]


def test_readers_get_copies():
    store = DeliveryStore()
    store.replace([{"id": "a", "status": "Pending"}])
    store.active.clear()
    found = store.find("a")
    found["status"] = "Signed"
    assert store.active[0]["status"] == "Pending"


def test_discard_and_customers():
    store = DeliveryStore()
    store.replace([{"id": 1, "status": "Completed"}])
    assert store.discard("1")["id"] == 1
    assert store.discard("1") is None

    store.replace_customers([{"id": "c1", "name": "Acme"}])
    store.upsert_customer({"id": "c1", "name": "Acme Corp"})
    store.upsert_customer({"id": "c2", "name": "Beta"})
    assert [c["name"] for c in store.customers] == ["Acme Corp", "Beta"]
    assert store.discard_customer("c2")["name"] == "Beta"
    assert store.find_customer("c2") is None
