# File location: tests/test_lifecycle.py
# starting -> stable timing, stop/start, and removal while a timer is armed

import asyncio
from datetime import timedelta
import pytest

from nfsim.errors import NotFoundError
from nfsim.models import LogLevel, NFStatus, NFType


class TestStabilization:

    @pytest.mark.asyncio
    async def test_becomes_stable_after_delay(self, sim):
        nf = sim.registry.start_new_network_function(NFType.AMF)
        started_at = nf.statusTimestamp
        await sim.settle()

        stable = sim.store.nfs.get(nf.id)
        assert stable.status == NFStatus.STABLE
        assert stable.statusTimestamp >= started_at + timedelta(seconds=sim.settings.stabilization_delay)

    @pytest.mark.asyncio
    async def test_stable_event_logged(self, sim):
        nf = sim.registry.start_new_network_function(NFType.AMF)
        await sim.settle()
        messages = [e.message for e in sim.event_log.entries(nf_id=nf.id)]
        assert f"{nf.name} is now stable and ready for connections" in messages

    @pytest.mark.asyncio
    async def test_listener_receives_event(self, sim):
        events = []
        sim.lifecycle.add_stable_listener(events.append)
        nf = sim.registry.start_new_network_function(NFType.NRF)
        await sim.settle()
        assert [e.nfId for e in events] == [nf.id]
        assert events[0].previousStatus == NFStatus.STARTING
        assert events[0].newStatus == NFStatus.STABLE

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self, sim):
        def broken(event):
            raise RuntimeError("boom")

        seen = []
        sim.lifecycle.add_stable_listener(broken)
        sim.lifecycle.add_stable_listener(seen.append)
        sim.registry.start_new_network_function(NFType.NRF)
        await sim.settle()
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_delete_before_timer_does_not_resurrect(self, sim):
        nf = sim.registry.start_new_network_function(NFType.AMF)
        assert sim.registry.delete_network_function(nf.id)
        await asyncio.sleep(sim.clock.to_real(sim.settings.stabilization_delay) * 3)
        await sim.settle()
        assert sim.store.nfs.get(nf.id) is None
        assert len(sim.store.nfs) == 0

    @pytest.mark.asyncio
    async def test_stop_cancels_stabilization(self, sim):
        nf = sim.registry.start_new_network_function(NFType.AMF)
        stopped = sim.lifecycle.stop(nf.id)
        assert stopped.status == NFStatus.STOPPED
        assert not sim.lifecycle.has_pending(nf.id)
        await asyncio.sleep(sim.clock.to_real(sim.settings.stabilization_delay) * 3)
        assert sim.store.nfs.get(nf.id).status == NFStatus.STOPPED

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, sim):
        nf = sim.registry.start_new_network_function(NFType.AMF)
        first = sim.lifecycle.stop(nf.id)
        warnings = len([e for e in sim.event_log.entries(nf_id=nf.id) if e.level == LogLevel.WARNING])
        second = sim.lifecycle.stop(nf.id)
        assert second.statusTimestamp == first.statusTimestamp
        assert len([e for e in sim.event_log.entries(nf_id=nf.id) if e.level == LogLevel.WARNING]) == warnings

    @pytest.mark.asyncio
    async def test_restart_from_stable(self, sim):
        nf = sim.registry.start_new_network_function(NFType.AMF)
        await sim.settle()
        restarted = sim.lifecycle.start(nf.id)
        assert restarted.status == NFStatus.STARTING
        assert sim.lifecycle.has_pending(nf.id)
        await sim.settle()
        assert sim.store.nfs.get(nf.id).status == NFStatus.STABLE

    @pytest.mark.asyncio
    async def test_restart_rearms_single_timer(self, sim):
        nf = sim.registry.start_new_network_function(NFType.AMF)
        sim.lifecycle.start(nf.id)
        sim.lifecycle.start(nf.id)
        assert sim.lifecycle.pending_count == 1
        await sim.shutdown()

    def test_unknown_nf(self, sim):
        with pytest.raises(NotFoundError):
            sim.lifecycle.stop("missing")

    @pytest.mark.asyncio
    async def test_shutdown_cancels_timers(self, sim):
        nf = sim.registry.start_new_network_function(NFType.AMF)
        await sim.shutdown()
        assert sim.lifecycle.pending_count == 0
        assert sim.store.nfs.get(nf.id).status == NFStatus.STARTING
