"""In-memory state: the Active and History buckets plus the customer list."""

from __future__ import annotations

from typing import Any, Mapping

from deliverytracker.sync.identity import find_by_id, index_of_id
from deliverytracker.sync.partition import Bucket, Partition, bucket_for, partition


class DeliveryStore:
    """Owns both delivery buckets; every bucket move goes through ``upsert``.

    A delivery id lives in exactly one bucket. Readers get copies of the
    lists, never the lists themselves.
    """

    def __init__(self) -> None:
        self._active: list[dict[str, Any]] = []
        self._history: list[dict[str, Any]] = []
        self._customers: list[dict[str, Any]] = []

    @property
    def active(self) -> list[dict[str, Any]]:
        return list(self._active)

    @property
    def history(self) -> list[dict[str, Any]]:
        return list(self._history)

    @property
    def customers(self) -> list[dict[str, Any]]:
        return list(self._customers)

    def snapshot(self) -> Partition:
        return Partition(active=self.active, history=self.history)

    def replace(self, records: Partition | list[Mapping[str, Any]]) -> Partition:
        """Swap in a freshly loaded set of deliveries."""

        if not isinstance(records, Partition):
            records = partition(records)
        self._active = list(records.active)
        self._history = list(records.history)
        return self.snapshot()

    def find(self, record_id: Any) -> dict[str, Any] | None:
        found = find_by_id(self._active, record_id) or find_by_id(self._history, record_id)
        return dict(found) if found is not None else None

    def upsert(self, record: Mapping[str, Any]) -> Bucket:
        """Place ``record`` in the bucket its status calls for.

        An existing record in the same bucket is replaced in place; a record
        changing bucket (or a new one) goes to the front of its target.
        """

        record = dict(record)
        target_bucket = bucket_for(record.get("status"))
        target, other = (
            (self._history, self._active)
            if target_bucket is Bucket.HISTORY
            else (self._active, self._history)
        )
        record_id = record.get("id")
        stale = index_of_id(other, record_id)
        if stale >= 0:
            del other[stale]
        existing = index_of_id(target, record_id)
        if existing >= 0:
            target[existing] = record
        else:
            target.insert(0, record)
        return target_bucket

    def discard(self, record_id: Any) -> dict[str, Any] | None:
        for bucket in (self._active, self._history):
            index = index_of_id(bucket, record_id)
            if index >= 0:
                return bucket.pop(index)
        return None

    def replace_customers(self, customers: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
        self._customers = [dict(customer) for customer in customers]
        return self.customers

    def find_customer(self, customer_id: Any) -> dict[str, Any] | None:
        found = find_by_id(self._customers, customer_id)
        return dict(found) if found is not None else None

    def upsert_customer(self, customer: Mapping[str, Any]) -> None:
        index = index_of_id(self._customers, customer.get("id"))
        if index >= 0:
            self._customers[index] = dict(customer)
        else:
            self._customers.append(dict(customer))

    def discard_customer(self, customer_id: Any) -> dict[str, Any] | None:
        index = index_of_id(self._customers, customer_id)
        return self._customers.pop(index) if index >= 0 else None
