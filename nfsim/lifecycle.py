# File location: nfsim/lifecycle.py
# NF Lifecycle Controller
# starting -> stable after a fixed delay; explicit stop, restart and removal

import asyncio
from datetime import timedelta
from typing import Awaitable, Callable, Dict, List, Union
import logging

from .clock import SimulationClock
from .errors import NotFoundError
from .events import EventLog
from .models import LifecycleEvent, NetworkFunction, NFStatus
from .store import TopologyStore

logger = logging.getLogger(__name__)

StableListener = Callable[[LifecycleEvent], Union[None, Awaitable[None]]]


class LifecycleController:
    """
    Drives NF status transitions.

    Each pending stabilization is an asyncio.Task keyed by NF id. Whatever
    happened to the NF while the task slept, the handler re-reads it from
    the store and does nothing unless it still exists and is still starting.
    """

    def __init__(
        self,
        store: TopologyStore,
        clock: SimulationClock,
        event_log: EventLog,
        stabilization_delay: float = 5.0,
    ):
        self.store = store
        self.clock = clock
        self.event_log = event_log
        self.stabilization_delay = stabilization_delay

        self._timers: Dict[str, asyncio.Task] = {}
        self._stable_listeners: List[StableListener] = []

    def add_stable_listener(self, listener: StableListener):
        """Register a callback (plain or coroutine) run when an NF becomes stable"""
        self._stable_listeners.append(listener)

    # =========================================================================
    # Timers
    # =========================================================================

    def schedule_stabilization(self, nf_id: str) -> asyncio.Task:
        """Arm (or re-arm) the stabilization timer for an NF"""
        self.cancel(nf_id)
        task = asyncio.create_task(self._stabilize_after_delay(nf_id), name=f"stabilize-{nf_id}")
        self._timers[nf_id] = task
        logger.debug(f"Stabilization armed for {nf_id} ({self.stabilization_delay}s)")
        return task

    def cancel(self, nf_id: str) -> bool:
        task = self._timers.pop(nf_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug(f"Stabilization cancelled for {nf_id}")
        return True

    def cancel_all(self) -> int:
        """Disarm every pending timer; returns how many were still running"""
        return sum(1 for nf_id in list(self._timers) if self.cancel(nf_id))

    def has_pending(self, nf_id: str) -> bool:
        task = self._timers.get(nf_id)
        return task is not None and not task.done()

    @property
    def pending_count(self) -> int:
        return sum(1 for task in self._timers.values() if not task.done())

    async def wait_idle(self):
        """Wait until every armed timer has fired or been cancelled"""
        while True:
            tasks = [t for t in self._timers.values() if not t.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self):
        tasks = list(self._timers.values())
        self._timers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _stabilize_after_delay(self, nf_id: str):
        try:
            await self.clock.sleep(self.stabilization_delay)
            await self._mark_stable(nf_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Stabilization of {nf_id} failed: {e}")
        finally:
            if self._timers.get(nf_id) is asyncio.current_task():
                del self._timers[nf_id]

    async def _mark_stable(self, nf_id: str):
        nf = self.store.nfs.get(nf_id)
        if nf is None:
            logger.info(f"Stabilization timer fired for removed NF {nf_id}, ignoring")
            return
        if nf.status != NFStatus.STARTING:
            logger.info(f"Stabilization timer fired for {nf.name} in state {nf.status.value}, ignoring")
            return

        earliest = nf.statusTimestamp + timedelta(seconds=self.stabilization_delay)
        stable_at = max(self.clock.now(), earliest)
        nf.status = NFStatus.STABLE
        nf.statusTimestamp = stable_at
        self.store.nfs.update(nf)

        logger.info(f"{nf.name} is now stable")
        self.event_log.success(nf.id, f"{nf.name} is now stable and ready for connections", {
            "previousStatus": NFStatus.STARTING.value,
            "newStatus": NFStatus.STABLE.value,
        })

        event = LifecycleEvent(
            nfId=nf.id,
            nfType=nf.type,
            nfName=nf.name,
            previousStatus=NFStatus.STARTING,
            newStatus=NFStatus.STABLE,
            timestamp=stable_at,
        )
        for listener in list(self._stable_listeners):
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Stable listener error for {nf.name}: {e}")

    # =========================================================================
    # Explicit Transitions
    # =========================================================================

    def start(self, nf_id: str) -> NetworkFunction:
        """(Re-)enter starting and re-arm the timer"""
        nf = self._require(nf_id)
        previous = nf.status
        nf.status = NFStatus.STARTING
        nf.statusTimestamp = self.clock.now()
        self.store.nfs.update(nf)
        self.schedule_stabilization(nf_id)

        logger.info(f"{nf.name} starting (was {previous.value})")
        self.event_log.info(nf.id, f"{nf.name} starting", {"previousStatus": previous.value})
        return nf

    def stop(self, nf_id: str) -> NetworkFunction:
        """Move to stopped; stopping a stopped NF changes nothing"""
        nf = self._require(nf_id)
        if nf.status == NFStatus.STOPPED:
            return nf
        self.cancel(nf_id)
        previous = nf.status
        nf.status = NFStatus.STOPPED
        nf.statusTimestamp = self.clock.now()
        self.store.nfs.update(nf)

        logger.info(f"{nf.name} stopped")
        self.event_log.warning(nf.id, f"{nf.name} stopped", {"previousStatus": previous.value})
        return nf

    def _require(self, nf_id: str) -> NetworkFunction:
        nf = self.store.nfs.get(nf_id)
        if nf is None:
            raise NotFoundError(f"Network function {nf_id} not found")
        return nf
