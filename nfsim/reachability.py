# File location: nfsim/reachability.py
# Reachability Simulator
# Probabilistic, subnet-aware ping between simulated NFs

import math
import random
import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Set

from opentelemetry import trace

from .clock import SimulationClock
from .config.addressing import subnet_of
from .errors import NotFoundError, StateError, ValidationError
from .events import EventLog, Transcript
from .models import (
    LineKind,
    NetworkFunction,
    NFStatus,
    PingReply,
    PingSession,
    PingStatistics,
)
from .registry import is_valid_ip
from .store import TopologyStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Success probability per packet
P_UNKNOWN_HOST = 0.10
P_CROSS_SUBNET = 0.20
P_NOT_STABLE = 0.30
P_STABLE_SAME_SUBNET = 0.90

PING_TTL = 255
PING_BYTES = 32
TIMEOUT_PENALTY = 0.5
STATISTICS_DELAY = 0.5
SUBNET_TARGET_DELAY = 0.2


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_statistics(replies: List[PingReply]) -> PingStatistics:
    """Sent/received counts, loss percentage and min/max/avg RTT of the successful packets"""
    sent = len(replies)
    times = [r.time for r in replies if r.success and r.time is not None]
    received = len(times)
    lost = sent - received
    stats = PingStatistics(
        sent=sent,
        received=received,
        lost=lost,
        lossPercentage=round_half_up(100 * lost / sent) if sent else 0,
    )
    if times:
        stats.minimum = min(times)
        stats.maximum = max(times)
        stats.average = round_half_up(sum(times) / len(times))
    return stats


class ReachabilitySimulator:
    """
    Simulated ICMP reachability between NFs.

    Two named behaviors coexist:
      ping()            - per-packet probabilistic result for any target,
                          cross-subnet targets get a reduced probability
      ping_restricted() - the terminal's subnet-restricted ping: a target
                          outside the source's /24 fails immediately with
                          every packet lost and nothing sent

    Only one ping may run per source NF at a time.
    """

    def __init__(
        self,
        store: TopologyStore,
        clock: SimulationClock,
        event_log: EventLog,
        rng: Optional[random.Random] = None,
        packet_count: int = 4,
        packet_interval: float = 0.5,
        history_limit: int = 50,
    ):
        self.store = store
        self.clock = clock
        self.event_log = event_log
        self.rng = rng or random.Random()
        self.packet_count = packet_count
        self.packet_interval = packet_interval
        self.history_limit = history_limit

        self._history: Dict[str, Deque[PingSession]] = {}
        self._in_flight: Set[str] = set()
        self.total_sessions = 0

    # =========================================================================
    # Per-packet Model
    # =========================================================================

    def success_probability(self, source: NetworkFunction, target_ip: str) -> float:
        target = self.store.find_nf_by_ip(target_ip)
        if target is None:
            return P_UNKNOWN_HOST
        if subnet_of(source.config.ipAddress) != subnet_of(target_ip):
            return P_CROSS_SUBNET
        if source.status != NFStatus.STABLE or target.status != NFStatus.STABLE:
            return P_NOT_STABLE
        return P_STABLE_SAME_SUBNET

    def is_reachable(self, source: NetworkFunction, target_ip: str) -> bool:
        """One Bernoulli trial at the current success probability"""
        return self.rng.random() < self.success_probability(source, target_ip)

    def response_time(self) -> int:
        """Round-trip time in ms, always within [1, 56]"""
        base = self.rng.uniform(1, 51)
        variation = self.rng.uniform(-5, 5)
        return max(1, round_half_up(base + variation))

    # =========================================================================
    # History
    # =========================================================================

    def get_ping_history(self, nf_id: str) -> List[PingSession]:
        return list(self._history.get(nf_id, ()))

    def _record(self, session: PingSession):
        history = self._history.setdefault(session.sourceId, deque(maxlen=self.history_limit))
        history.append(session)
        self.total_sessions += 1

        stats = session.statistics
        level = self.event_log.success if stats.received else self.event_log.warning
        level(session.sourceId, f"Ping {session.targetIp}: {stats.received}/{stats.sent} received", {
            "targetIp": session.targetIp,
            "lossPercentage": stats.lossPercentage,
            "crossSubnetBlocked": session.crossSubnetBlocked,
        })

    def forget(self, nf_id: str):
        self._history.pop(nf_id, None)

    # =========================================================================
    # Public Operations
    # =========================================================================

    def _require_source(self, source_id: str) -> NetworkFunction:
        source = self.store.nfs.get(source_id)
        if source is None:
            raise NotFoundError(f"Source network function {source_id} not found")
        return source

    def _claim(self, source_id: str):
        if source_id in self._in_flight:
            raise StateError(f"A ping from {source_id} is already in progress")
        self._in_flight.add(source_id)

    async def ping(self, source_id: str, target_ip: str, out: Optional[Transcript] = None) -> PingSession:
        """Probabilistic ping regardless of subnet"""
        source = self._require_source(source_id)
        if not is_valid_ip(target_ip):
            raise ValidationError(f"Invalid target address: {target_ip}")

        self._claim(source_id)
        try:
            with tracer.start_as_current_span("reachability.ping") as span:
                span.set_attribute("nfsim.nf_id", source_id)
                span.set_attribute("nfsim.target_ip", target_ip)
                session = await self._send_packets(source, target_ip, out)
                span.set_attribute("nfsim.received", session.statistics.received)
                return session
        finally:
            self._in_flight.discard(source_id)

    async def ping_restricted(self, source_id: str, target_ip: str, out: Optional[Transcript] = None) -> PingSession:
        """Terminal ping: validates the host and refuses to leave the source's subnet"""
        source = self._require_source(source_id)
        if not is_valid_ip(target_ip):
            raise ValidationError(
                f"Ping request could not find host {target_ip}. Please check the name and try again."
            )

        self._claim(source_id)
        try:
            with tracer.start_as_current_span("reachability.ping_restricted") as span:
                span.set_attribute("nfsim.nf_id", source_id)
                span.set_attribute("nfsim.target_ip", target_ip)
                return await self._restricted(source, target_ip, out)
        finally:
            self._in_flight.discard(source_id)

    async def ping_subnet(self, source_id: str, out: Optional[Transcript] = None) -> List[PingSession]:
        """Restricted ping against every other NF in the source's /24"""
        source = self._require_source(source_id)
        out = out or Transcript("ping-subnet")

        self._claim(source_id)
        try:
            network = subnet_of(source.config.ipAddress)
            peers = [
                nf for nf in self.store.nfs.get_all()
                if nf.id != source.id and subnet_of(nf.config.ipAddress) == network
            ]

            out.info(f"Subnet Scan: {network}.0/24")
            out.info(f"Source: {source.name} ({source.config.ipAddress})")
            out.info("Restriction: Only same-subnet services can be pinged")
            out.blank()

            if not peers:
                out.line(f"No other services found in subnet {network}.0/24", LineKind.ERROR)
                out.info(f"Add more services with IPs in range {network}.1-{network}.254")
                return []

            out.info(f"Found {len(peers)} services in subnet {network}.0/24:")
            for peer in peers:
                icon = "✅" if peer.status == NFStatus.STABLE else "⚠️"
                out.info(f"  {icon} {peer.name} ({peer.config.ipAddress}) [{peer.status.value.upper()}]")
            out.blank()
            out.info("Starting connectivity tests...")
            out.blank()

            sessions = []
            tested = []
            for peer in peers:
                current = self.store.nfs.get(peer.id) or peer
                tested.append(current)
                out.info(f"Testing {current.name} ({current.config.ipAddress}) [{current.status.value.upper()}]")
                sessions.append(await self._restricted(source, current.config.ipAddress, out))
                out.blank()
                await self.clock.sleep(SUBNET_TARGET_DELAY)

            stable = sum(1 for p in tested if p.status == NFStatus.STABLE)
            out.info("═" * 39)
            out.success(f"Subnet scan completed for {network}.0/24")
            out.info(f"Total services tested: {len(peers)}")
            out.info(f"Stable services: {stable}")
            out.info(f"Unstable services: {len(peers) - stable}")
            out.info("═" * 39)
            return sessions
        finally:
            self._in_flight.discard(source_id)

    # =========================================================================
    # Internals
    # =========================================================================

    async def _restricted(self, source: NetworkFunction, target_ip: str, out: Optional[Transcript]) -> PingSession:
        source_net = subnet_of(source.config.ipAddress)
        target_net = subnet_of(target_ip)
        if source_net == target_net:
            return await self._send_packets(source, target_ip, out)

        replies = [PingReply(sequence=i, success=False) for i in range(1, self.packet_count + 1)]
        session = PingSession(
            sourceId=source.id,
            targetIp=target_ip,
            replies=replies,
            statistics=compute_statistics(replies),
            crossSubnetBlocked=True,
            timestamp=self.clock.now(),
        )
        if out is not None:
            out.info(f"Pinging {target_ip} with {PING_BYTES} bytes of data:")
            out.blank()
            out.line("PING: transmit failed. General failure.", LineKind.ERROR)
            out.blank()
            out.line(f"Network Error: Cannot reach {target_ip}", LineKind.ERROR)
            out.line(f"Source subnet: {source_net}.0/24", LineKind.ERROR)
            out.line(f"Target subnet: {target_net}.0/24", LineKind.ERROR)
            out.line("Reason: Cross-subnet communication not allowed", LineKind.ERROR)
            out.blank()
            self._write_statistics(target_ip, session.statistics, out)
        logger.info(f"Ping {source.config.ipAddress} -> {target_ip} blocked (cross-subnet)")
        self._record(session)
        return session

    async def _send_packets(self, source: NetworkFunction, target_ip: str, out: Optional[Transcript]) -> PingSession:
        if out is not None:
            out.info(f"Pinging {target_ip} with {PING_BYTES} bytes of data:")
            out.blank()

        replies: List[PingReply] = []
        for sequence in range(1, self.packet_count + 1):
            await self.clock.sleep(self.packet_interval)
            # Status may have changed while we slept
            source = self.store.nfs.get(source.id) or source

            if self.is_reachable(source, target_ip):
                rtt = self.response_time()
                replies.append(PingReply(sequence=sequence, success=True, time=rtt, ttl=PING_TTL))
                if out is not None:
                    out.success(f"Reply from {target_ip}: bytes={PING_BYTES} time={rtt}ms TTL={PING_TTL}")
            else:
                await self.clock.sleep(TIMEOUT_PENALTY)
                replies.append(PingReply(sequence=sequence, success=False))
                if out is not None:
                    out.line("Request timed out.", LineKind.ERROR)

        await self.clock.sleep(STATISTICS_DELAY)
        session = PingSession(
            sourceId=source.id,
            targetIp=target_ip,
            replies=replies,
            statistics=compute_statistics(replies),
            timestamp=self.clock.now(),
        )
        if out is not None:
            out.blank()
            self._write_statistics(target_ip, session.statistics, out)
        self._record(session)
        return session

    def _write_statistics(self, target_ip: str, stats: PingStatistics, out: Transcript):
        out.info(f"Ping statistics for {target_ip}:")
        out.info(
            f"    Packets: Sent = {stats.sent}, Received = {stats.received}, "
            f"Lost = {stats.lost} ({stats.lossPercentage}% loss),"
        )
        if stats.received:
            out.info("Approximate round trip times in milli-seconds:")
            out.info(f"    Minimum = {stats.minimum}ms, Maximum = {stats.maximum}ms, Average = {stats.average}ms")
