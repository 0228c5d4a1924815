"""FastAPI dependencies: owner identity and the per-owner sync orchestrator."""

from __future__ import annotations

import asyncio
from collections import OrderedDict

from fastapi import Depends, HTTPException, Request, status
from loguru import logger

from deliverytracker.core.cache import LocalCache
from deliverytracker.core.config import settings
from deliverytracker.core.db import SessionLocal
from deliverytracker.core.logging import owner_id_ctx_var
from deliverytracker.core.middleware import OWNER_HEADER
from deliverytracker.sync.orchestrator import SyncOrchestrator
from deliverytracker.sync.remote import SqlAlchemyRemoteStore


class OrchestratorRegistry:
    """Least-recently-used orchestrators, one per owner, sharing the cache and remote store.

    An orchestrator is warmed on first use: its pending queue is restored
    from the cache and deliveries and customers are loaded. Warm-up holds a
    lock for that owner only. Beyond ``max_size`` owners the least recently
    used orchestrator is dropped; its queue is already persisted in the cache
    and comes back on the owner's next request.
    """

    def __init__(
        self,
        cache: LocalCache | None = None,
        remote=None,
        max_size: int | None = None,
    ) -> None:
        self.cache = cache or LocalCache()
        self.remote = remote if remote is not None else SqlAlchemyRemoteStore(SessionLocal)
        self.max_size = max_size if max_size is not None else settings.ORCHESTRATOR_CACHE_SIZE
        self._orchestrators: OrderedDict[str, SyncOrchestrator] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._orchestrators)

    def __contains__(self, owner_id: str) -> bool:
        return owner_id in self._orchestrators

    async def get(self, owner_id: str) -> SyncOrchestrator:
        orchestrator = self._orchestrators.get(owner_id)
        if orchestrator is not None:
            self._orchestrators.move_to_end(owner_id)
            return orchestrator
        lock = self._locks.setdefault(owner_id, asyncio.Lock())
        async with lock:
            orchestrator = self._orchestrators.get(owner_id)
            if orchestrator is None:
                orchestrator = SyncOrchestrator(owner_id, remote=self.remote, cache=self.cache)
                await orchestrator.queue.restore()
                await orchestrator.load()
                await orchestrator.load_customers()
                self._orchestrators[owner_id] = orchestrator
                self._evict()
        if not lock.locked():
            self._locks.pop(owner_id, None)
        return orchestrator

    def _evict(self) -> None:
        while len(self._orchestrators) > max(self.max_size, 1):
            owner_id, _ = self._orchestrators.popitem(last=False)
            logger.bind(evicted_owner=owner_id).info("orchestrator_evicted")

    async def close(self) -> None:
        self._orchestrators.clear()
        self._locks.clear()
        await self.cache.close()


registry = OrchestratorRegistry()


def get_registry() -> OrchestratorRegistry:
    return registry


async def get_owner_id(request: Request) -> str:
    owner_id = (request.headers.get(OWNER_HEADER) or "").strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {OWNER_HEADER} header",
        )
    request.state.owner_id = owner_id
    owner_id_ctx_var.set(owner_id)
    return owner_id


async def get_orchestrator(
    owner_id: str = Depends(get_owner_id),
    registry: OrchestratorRegistry = Depends(get_registry),
) -> SyncOrchestrator:
    return await registry.get(owner_id)
