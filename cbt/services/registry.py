"""In-process registry of live attempt controllers.

HTTP requests are stateless, but an attempt's answer buffer and timer are
not. The registry keeps one controller per in-progress attempt so that
successive requests from the same student see the same buffer, and the
timer keeps ticking between requests. Controllers remove themselves when
they submit or are closed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from starlette.concurrency import run_in_threadpool

from cbt.core.clock import Clock, utcnow
from cbt.core.errors import NotFoundError, ValidationError
from cbt.core.identity import StudentSession
from cbt.schemas.attempt import AttemptRecord, AttemptStatus
from cbt.services.controller import AttemptController
from cbt.services.store import StoreFactory, open_repository

logger = logging.getLogger(__name__)


class AttemptRegistry:
    def __init__(
        self,
        store_factory: StoreFactory = open_repository,
        *,
        strategy: str | None = None,
        atomic: bool | None = None,
        clock: Clock = utcnow,
        tick_interval: float | None = None,
    ):
        self.store_factory = store_factory
        self.strategy = strategy
        self.atomic = atomic
        self.clock = clock
        self.tick_interval = tick_interval
        self._controllers: dict[uuid.UUID, AttemptController] = {}
        self._by_owner: dict[tuple[uuid.UUID, uuid.UUID], uuid.UUID] = {}
        self._locks: dict[tuple[uuid.UUID, uuid.UUID], asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._controllers)

    def _new_controller(
        self, exam_id: uuid.UUID, session: StudentSession
    ) -> AttemptController:
        return AttemptController(
            exam_id,
            session,
            self.store_factory,
            strategy=self.strategy,
            atomic=self.atomic,
            clock=self.clock,
            tick_interval=self.tick_interval,
            on_finished=self._evict,
        )

    def _evict(self, controller: AttemptController) -> None:
        attempt_id = controller.attempt_id
        if attempt_id is None or self._controllers.get(attempt_id) is not controller:
            return
        del self._controllers[attempt_id]
        key = (controller.exam_id, controller.student_id)
        self._by_owner.pop(key, None)
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]
        logger.debug("Evicted controller for attempt %s", attempt_id)

    async def open(
        self, exam_id: uuid.UUID, session: StudentSession
    ) -> AttemptController:
        """Resolve-or-create through a controller, reusing a live one.

        Entries for the same (exam, student) are serialised so two
        overlapping requests never build two controllers for one attempt.
        """
        key = (exam_id, session.current_student_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            return await self._open_locked(key, session)

    async def _open_locked(
        self, key: tuple[uuid.UUID, uuid.UUID], session: StudentSession
    ) -> AttemptController:
        live_id = self._by_owner.get(key)
        existing = self._controllers.get(live_id) if live_id else None
        if existing is not None:
            await existing.tick()
            if existing.is_live:
                existing.resumed = True
                return existing

        controller = self._new_controller(key[0], session)
        await controller.open()
        if not controller.is_live:
            return controller

        registered = self._controllers.get(controller.attempt_id)
        if registered is not None and registered.is_live:
            # Same attempt already has a controller; keep its buffer and timer
            controller.close()
            registered.resumed = True
            self._by_owner[key] = registered.attempt_id
            return registered

        self._controllers[controller.attempt_id] = controller
        self._by_owner[key] = controller.attempt_id
        return controller

    async def get(
        self, attempt_id: uuid.UUID, session: StudentSession
    ) -> AttemptController:
        """The caller's controller for *attempt_id*, after a deadline check.

        An in-progress attempt with no live controller (process restart,
        another worker) is resumed from the store.
        """
        student_id = session.current_student_id
        controller = self._controllers.get(attempt_id)
        if controller is None:
            return await self._rehydrate(attempt_id, session)
        if controller.student_id != student_id:
            raise NotFoundError("Attempt not found")
        await controller.tick()
        return controller

    def _load_attempt(self, attempt_id: uuid.UUID) -> AttemptRecord | None:
        with self.store_factory() as store:
            return store.get_attempt(attempt_id)

    async def _rehydrate(
        self, attempt_id: uuid.UUID, session: StudentSession
    ) -> AttemptController:
        attempt = await run_in_threadpool(self._load_attempt, attempt_id)
        if attempt is None or attempt.student_id != session.current_student_id:
            raise NotFoundError("Attempt not found")
        if attempt.status is not AttemptStatus.IN_PROGRESS:
            raise ValidationError("Attempt already submitted")

        logger.info("Resuming attempt %s with no live controller", attempt_id)
        controller = await self.open(attempt.exam_id, session)
        if controller.attempt_id != attempt_id:
            raise ValidationError("Attempt already submitted")
        return controller

    async def close_all(self) -> None:
        for controller in list(self._controllers.values()):
            controller.close()
        self._controllers.clear()
        self._by_owner.clear()
        self._locks.clear()
