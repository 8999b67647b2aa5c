# File location: nfsim/terminal.py
# Command Interpreter
# Text commands for the compose terminal and for NF-bound terminals

import re
import logging
from typing import Optional

from opentelemetry import trace

from .config.addressing import SUBNET_MASK, gateway_of
from .errors import SimulationError, ValidationError
from .events import LineCallback, Transcript
from .models import CommandResult, LineKind

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_COMPOSE = r"^(?:docker\s+compose|docker-compose)\s+(?:-f\s+(?P<file>\S+)\s+)?"
COMPOSE_UP = re.compile(_COMPOSE + r"up\s+-d(?:\s+(?P<service>\S+))?$")
COMPOSE_DOWN = re.compile(_COMPOSE + r"down(?:\s+(?P<service>\S+))?$")
GNB_COMPOSE_FILE = "docker-compose-gnb.yml"

DOCKER_VERSION = [
    "Client: Docker Engine - Community",
    " Version:           28.0.4",
    " API version:       1.48",
    " Go version:        go1.23.7",
    " Git commit:        b8034c0",
    " Built:             Tue Mar 25 15:07:11 2025",
    " OS/Arch:           linux/amd64",
    " Context:           default",
    "",
    "Server: Docker Engine - Community",
    " Engine:",
    "  Version:          28.0.4",
    "  API version:      1.48 (minimum version 1.24)",
    "  Go version:       go1.23.7",
    "  Git commit:       6430e49",
    "  Built:            Tue Mar 25 15:07:11 2025",
    "  OS/Arch:          linux/amd64",
    "  Experimental:     false",
    " containerd:",
    "  Version:          v2.2.1",
    " runc:",
    "  Version:          1.3.4",
    " docker-init:",
    "  Version:          0.19.0",
]

HELP_TEXT = [
    ("Available Commands:", None),
    ("", None),
    ("  bring-up-all", "Start all core Network Functions (one-click deployment)"),
    ("  bring-up <service>", "Start one Network Function (e.g. oai-nrf, oai-amf, mysql)"),
    ("  tear-down-all", "Stop and remove all services, buses and the network"),
    ("  tear-down <service>", "Stop and remove one Network Function"),
    ("  start <service>", "Start (or restart) an existing Network Function"),
    ("  stop <service>", "Stop an existing Network Function"),
    ("  status", "List Network Functions and their status"),
    ("  ps", "Show containers"),
    ("  network ls | network inspect <name>", "Show the simulated networks"),
    ("  ping <address>", "Ping an address from this NF (4 packets)"),
    ("  ping-subnet", "Ping every other NF in this NF's subnet"),
    ("  ipconfig | netstat", "Show this NF's address or its connections"),
    ("  systeminfo", "Show this NF's host, address, uptime and status"),
    ("  docker version", "Show Docker version information"),
    ("  help | clear | exit", None),
    ("", None),
    ("docker compose [-f docker-compose.yml] up -d [service], down [service],", None),
    ("docker start|stop <service> and docker ps|network are accepted as well.", None),
]


def normalize_command(command: str) -> str:
    return re.sub(r"\s+", " ", command or "").strip().lower()


class TerminalSession:
    """
    A simulated terminal.

    The main (compose) terminal is unbound; an NF terminal is bound to one
    NF and additionally understands ping, ping-subnet, ipconfig and netstat.
    Errors raised by the simulator come back as error lines, never as
    exceptions.
    """

    def __init__(self, simulation, nf_id: Optional[str] = None):
        self.simulation = simulation
        self.nf_id = nf_id

    @property
    def bound_nf(self):
        if self.nf_id is None:
            return None
        return self.simulation.store.nfs.get(self.nf_id)

    def banner(self) -> CommandResult:
        out = Transcript("")
        nf = self.bound_nf
        if nf is not None:
            out.info(f"Connected to {nf.name} ({nf.config.ipAddress})")
        out.info('Type "help" for available commands.')
        return out.result

    async def execute(self, command: str, on_line: Optional[LineCallback] = None) -> CommandResult:
        """Run one command line and return everything it printed"""
        out = Transcript(command, on_line)
        cmd = normalize_command(command)
        if not cmd:
            return out.result

        with tracer.start_as_current_span("terminal.execute") as span:
            span.set_attribute("nfsim.command", cmd)
            if self.nf_id:
                span.set_attribute("nfsim.nf_id", self.nf_id)
            try:
                handled = await self._dispatch(cmd, out)
                if not handled:
                    out.error(f"Command not found: {command.strip()}")
                    out.info('Type "help" for available commands.')
            except SimulationError as e:
                logger.info(f"Command '{cmd}' failed: {e.message}")
                out.error(f"Error: {e.message}")
        return out.result

    async def _dispatch(self, cmd: str, out: Transcript) -> bool:
        sim = self.simulation
        orchestrator = sim.orchestrator
        args = cmd.split(" ")

        if cmd in ("help", "?"):
            self._help(out)
        elif cmd in ("clear", "cls"):
            out.result.data["clear"] = True
        elif cmd == "exit":
            out.result.data["exit"] = True
        elif cmd in ("status", "check"):
            orchestrator.status(out)
        elif cmd == "bring-up-all":
            await orchestrator.bring_up_all(out)
        elif args[0] == "bring-up" and len(args) == 2:
            await orchestrator.bring_up_one(args[1], out)
        elif cmd == "tear-down-all":
            await orchestrator.tear_down_all(out)
        elif args[0] == "tear-down" and len(args) == 2:
            await orchestrator.tear_down_one(args[1], out)
        elif COMPOSE_UP.match(cmd):
            match = COMPOSE_UP.match(cmd)
            service = match.group("service") or ("oai-gnb" if match.group("file") == GNB_COMPOSE_FILE else None)
            if service:
                await orchestrator.bring_up_one(service, out)
            else:
                await orchestrator.bring_up_all(out)
        elif COMPOSE_DOWN.match(cmd):
            match = COMPOSE_DOWN.match(cmd)
            service = match.group("service") or ("oai-gnb" if match.group("file") == GNB_COMPOSE_FILE else None)
            if service:
                await orchestrator.tear_down_one(service, out)
            else:
                await orchestrator.tear_down_all(out)
        elif args[0] in ("start", "stop") or args[:2] in (["docker", "start"], ["docker", "stop"]):
            verb_args = args[1:] if args[0] != "docker" else args[2:]
            verb = args[0] if args[0] != "docker" else args[1]
            if len(verb_args) != 1:
                out.error(f"Usage: {verb} <service-name>")
            elif verb == "start":
                await orchestrator.start_one(verb_args[0], out)
            else:
                await orchestrator.stop_one(verb_args[0], out)
        elif cmd in ("ps", "docker ps"):
            orchestrator.ps(out)
        elif cmd in ("network ls", "docker network ls"):
            orchestrator.network_ls(out)
        elif re.match(r"^(?:docker )?network inspect \S+$", cmd):
            orchestrator.network_inspect(args[-1], out)
        elif cmd in ("ping-subnet", "ping subnet"):
            nf = self._require_bound_nf()
            await sim.reachability.ping_subnet(nf.id, out)
        elif args[0] == "ping":
            nf = self._require_bound_nf()
            if len(args) != 2:
                out.error("Usage: ping <hostname or IP address>")
            else:
                await sim.reachability.ping_restricted(nf.id, args[1], out)
        elif cmd == "ipconfig":
            self._ipconfig(out)
        elif cmd == "netstat":
            self._netstat(out)
        elif cmd == "systeminfo":
            self._systeminfo(out)
        elif cmd == "docker version":
            self._docker_version(out)
        else:
            return False
        return True

    # =========================================================================
    # NF-bound Commands
    # =========================================================================

    def _require_bound_nf(self):
        if self.nf_id is None:
            raise ValidationError("This command needs a terminal attached to a network function")
        nf = self.bound_nf
        if nf is None:
            raise ValidationError(f"Network function {self.nf_id} no longer exists")
        return nf

    def _help(self, out: Transcript):
        for command, description in HELP_TEXT:
            out.info(command)
            if description:
                out.info(f"    {description}")

    def _ipconfig(self, out: Transcript):
        nf = self._require_bound_nf()
        ip = nf.config.ipAddress
        out.info("IP Configuration")
        out.blank()
        out.info("Ethernet adapter Local Area Connection:")
        out.blank()
        out.info("   Connection-specific DNS Suffix  . : 5g.local")
        out.info(f"   IPv4 Address. . . . . . . . . . . : {ip}")
        out.info(f"   Subnet Mask . . . . . . . . . . . : {SUBNET_MASK}")
        out.info(f"   Default Gateway . . . . . . . . . : {gateway_of(ip)}")
        out.result.data.update({"ipAddress": ip, "subnetMask": SUBNET_MASK, "gateway": gateway_of(ip)})

    def _netstat(self, out: Transcript):
        nf = self._require_bound_nf()
        store = self.simulation.store
        local = f"{nf.config.ipAddress}:{nf.config.port}"

        out.info("Active Connections")
        out.blank()
        out.info(f"  {'Proto':<6} {'Local Address':<22} {'Foreign Address':<22} State")

        count = 0
        for conn in store.connections_for(nf.id):
            other = store.nfs.get(conn.targetId if conn.sourceId == nf.id else conn.sourceId)
            if other is None:
                continue
            foreign = f"{other.config.ipAddress}:{other.config.port}"
            out.info(f"  {'TCP':<6} {local:<22} {foreign:<22} ESTABLISHED")
            count += 1

        for bus_conn in store.bus_connections_for(nf.id):
            bus = store.buses.get(bus_conn.busId)
            if bus is None:
                continue
            out.info(f"  {'TCP':<6} {local:<22} {bus.name + ':BUS':<22} ESTABLISHED")
            count += 1

        if count == 0:
            out.line("  No active connections.", LineKind.INFO)
        out.result.data["connections"] = count

    def _systeminfo(self, out: Transcript):
        nf = self._require_bound_nf()
        seconds = max(0, int((self.simulation.clock.now() - nf.createdAt).total_seconds()))
        hours, rest = divmod(seconds, 3600)
        uptime = f"{hours}h {rest // 60}m {rest % 60}s"

        out.info(f"Host Name:                 {nf.name}")
        out.info("Network Card:              5G Service Interface")
        out.info("                          Connection Name: Local Area Connection")
        out.info(f"                          IP Address:      {nf.config.ipAddress}")
        out.info(f"                          Port:            {nf.config.port}")
        out.info(f"                          Protocol:        {nf.config.httpProtocol.value}")
        out.info(f"System Up Time:            {uptime}")
        out.info(f"Service Status:            {nf.status.value.upper()}")
        out.result.data.update({"hostName": nf.name, "uptimeSeconds": seconds, "status": nf.status.value})

    def _docker_version(self, out: Transcript):
        for text in DOCKER_VERSION:
            if text:
                out.info(text)
            else:
                out.blank()
