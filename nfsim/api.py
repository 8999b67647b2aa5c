# File location: nfsim/api.py
# NF Simulator HTTP API
# Exposes the orchestration, reachability and terminal surfaces over FastAPI

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Path, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from contextlib import asynccontextmanager
from typing import List, Optional
import uvicorn
import logging
import argparse

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.resources import Resource

from .config.settings import SimulationSettings
from .errors import SimulationError
from .models import (
    Bus,
    BusConnection,
    CommandResult,
    Connection,
    EventLogEntry,
    NetworkFunction,
    NFConfigUpdate,
    NFCreateRequest,
    NFStatus,
    PingRequest,
    PingSession,
    ProtocolUpdate,
    TerminalCommand,
)
from .simulation import Simulation

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# OpenTelemetry setup
resource = Resource.create({"service.name": "nfsim"})
trace.set_tracer_provider(TracerProvider(resource=resource))
tracer = trace.get_tracer(__name__)

router = APIRouter()


def get_simulation(request: Request) -> Simulation:
    return request.app.state.simulation


def http_error(e: SimulationError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


# =============================================================================
# Health & Metrics
# =============================================================================

@router.get("/health")
async def health_check(sim: Simulation = Depends(get_simulation)):
    """Health check endpoint"""
    nfs = sim.store.nfs.get_all()
    return {
        "status": "healthy",
        "service": "nfsim",
        "version": "1.0.0",
        "networkExists": sim.orchestrator.network_exists,
        "commandInProgress": sim.orchestrator.busy,
        "nfs": {
            "total": len(nfs),
            "stable": len([nf for nf in nfs if nf.status == NFStatus.STABLE]),
        },
    }


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics(sim: Simulation = Depends(get_simulation)):
    """Prometheus-compatible metrics"""
    nfs = sim.store.nfs.get_all()
    lines = [
        "# HELP nfsim_nfs Network functions by status",
        "# TYPE nfsim_nfs gauge",
    ]
    for status in NFStatus:
        count = len([nf for nf in nfs if nf.status == status])
        lines.append(f'nfsim_nfs{{status="{status.value}"}} {count}')

    lines += [
        "",
        "# HELP nfsim_connections_total Connections between NFs",
        "# TYPE nfsim_connections_total gauge",
        f"nfsim_connections_total {len(sim.store.connections)}",
        "",
        "# HELP nfsim_buses_total Service buses",
        "# TYPE nfsim_buses_total gauge",
        f"nfsim_buses_total {len(sim.store.buses)}",
        "",
        "# HELP nfsim_bus_connections_total NF to bus links",
        "# TYPE nfsim_bus_connections_total gauge",
        f"nfsim_bus_connections_total {len(sim.store.bus_connections)}",
        "",
        "# HELP nfsim_pending_stabilizations Armed stabilization timers",
        "# TYPE nfsim_pending_stabilizations gauge",
        f"nfsim_pending_stabilizations {sim.lifecycle.pending_count}",
        "",
        "# HELP nfsim_ping_sessions_total Completed ping sessions",
        "# TYPE nfsim_ping_sessions_total counter",
        f"nfsim_ping_sessions_total {sim.reachability.total_sessions}",
    ]
    return "\n".join(lines) + "\n"


# =============================================================================
# Network Functions
# =============================================================================

@router.get("/nfs", response_model=List[NetworkFunction])
async def list_nfs(sim: Simulation = Depends(get_simulation)):
    """List all network functions"""
    with tracer.start_as_current_span("list_nfs"):
        return sim.registry.list_network_functions()


@router.post("/nfs", response_model=NetworkFunction, status_code=201)
async def create_nf(request: NFCreateRequest, sim: Simulation = Depends(get_simulation)):
    """Start a new network function"""
    with tracer.start_as_current_span("create_nf") as span:
        span.set_attribute("nf.type", request.type.value)
        try:
            return sim.registry.start_new_network_function(
                request.type, ip=request.ipAddress, port=request.port, name=request.name
            )
        except SimulationError as e:
            raise http_error(e)


@router.get("/nfs/{nf_id}", response_model=NetworkFunction)
async def get_nf(nf_id: str = Path(..., description="NF ID"), sim: Simulation = Depends(get_simulation)):
    """Get a network function"""
    with tracer.start_as_current_span("get_nf") as span:
        span.set_attribute("nf.id", nf_id)
        try:
            return sim.registry.get_network_function(nf_id)
        except SimulationError as e:
            raise http_error(e)


@router.patch("/nfs/{nf_id}", response_model=NetworkFunction)
async def update_nf(
    update: NFConfigUpdate,
    nf_id: str = Path(..., description="NF ID"),
    sim: Simulation = Depends(get_simulation),
):
    """Edit address, port or protocol of a network function"""
    with tracer.start_as_current_span("update_nf") as span:
        span.set_attribute("nf.id", nf_id)
        try:
            return sim.registry.update_network_function_config(
                nf_id, ip=update.ipAddress, port=update.port, http_protocol=update.httpProtocol
            )
        except SimulationError as e:
            raise http_error(e)


@router.delete("/nfs/{nf_id}", status_code=204)
async def delete_nf(nf_id: str = Path(..., description="NF ID"), sim: Simulation = Depends(get_simulation)):
    """Delete a network function and its links"""
    with tracer.start_as_current_span("delete_nf") as span:
        span.set_attribute("nf.id", nf_id)
        if not sim.registry.delete_network_function(nf_id):
            raise HTTPException(status_code=404, detail=f"Network function {nf_id} not found")


@router.put("/settings/http-protocol")
async def set_http_protocol(update: ProtocolUpdate, sim: Simulation = Depends(get_simulation)):
    """Apply one HTTP protocol to every network function"""
    with tracer.start_as_current_span("set_http_protocol") as span:
        span.set_attribute("http.protocol", update.httpProtocol.value)
        updated = sim.registry.update_global_protocol(update.httpProtocol)
        return {"httpProtocol": update.httpProtocol.value, "updated": updated}


# =============================================================================
# Reachability
# =============================================================================

@router.post("/nfs/{nf_id}/ping", response_model=PingSession)
async def ping(
    request: PingRequest,
    nf_id: str = Path(..., description="Source NF ID"),
    sim: Simulation = Depends(get_simulation),
):
    """Probabilistic ping from a network function"""
    with tracer.start_as_current_span("ping") as span:
        span.set_attribute("nf.id", nf_id)
        try:
            return await sim.reachability.ping(nf_id, request.targetIp)
        except SimulationError as e:
            raise http_error(e)


@router.get("/nfs/{nf_id}/ping-history", response_model=List[PingSession])
async def ping_history(nf_id: str = Path(..., description="NF ID"), sim: Simulation = Depends(get_simulation)):
    """Recent ping sessions started from a network function"""
    if not sim.store.nfs.contains(nf_id):
        raise HTTPException(status_code=404, detail=f"Network function {nf_id} not found")
    return sim.reachability.get_ping_history(nf_id)


# =============================================================================
# Topology
# =============================================================================

@router.get("/connections", response_model=List[Connection])
async def list_connections(sim: Simulation = Depends(get_simulation)):
    """List all connections"""
    return sim.store.connections.get_all()


@router.get("/buses", response_model=List[Bus])
async def list_buses(sim: Simulation = Depends(get_simulation)):
    """List all service buses"""
    return sim.store.buses.get_all()


@router.get("/bus-connections", response_model=List[BusConnection])
async def list_bus_connections(sim: Simulation = Depends(get_simulation)):
    """List all NF to bus links"""
    return sim.store.bus_connections.get_all()


@router.get("/events", response_model=List[EventLogEntry])
async def list_events(
    nf_id: Optional[str] = Query(None, description="Filter by NF ID"),
    limit: int = Query(100, ge=1, le=1000),
    sim: Simulation = Depends(get_simulation),
):
    """Structured event log"""
    return sim.event_log.entries(nf_id=nf_id, limit=limit)


# =============================================================================
# Terminals
# =============================================================================

@router.post("/terminal", response_model=CommandResult)
async def run_command(body: TerminalCommand, sim: Simulation = Depends(get_simulation)):
    """Run a command in the compose terminal"""
    with tracer.start_as_current_span("terminal_command") as span:
        span.set_attribute("command", body.command)
        return await sim.terminal().execute(body.command)


@router.post("/nfs/{nf_id}/terminal", response_model=CommandResult)
async def run_nf_command(
    body: TerminalCommand,
    nf_id: str = Path(..., description="NF ID"),
    sim: Simulation = Depends(get_simulation),
):
    """Run a command in a terminal attached to one network function"""
    with tracer.start_as_current_span("nf_terminal_command") as span:
        span.set_attribute("nf.id", nf_id)
        span.set_attribute("command", body.command)
        if not sim.store.nfs.contains(nf_id):
            raise HTTPException(status_code=404, detail=f"Network function {nf_id} not found")
        return await sim.terminal(nf_id).execute(body.command)


# =============================================================================
# Application
# =============================================================================

def create_app(simulation: Optional[Simulation] = None) -> FastAPI:
    """Build the API around a simulation (a fresh one from the environment by default)"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events"""
        if getattr(app.state, "simulation", None) is None:
            app.state.simulation = Simulation(SimulationSettings.from_env())
        logger.info("NF simulator ready")
        yield
        logger.info("NF simulator shutting down...")
        await app.state.simulation.shutdown()

    app = FastAPI(
        title="NF Orchestration & Reachability Simulator",
        description="Simulated 5G core NF lifecycle, compose commands and ping",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.simulation = simulation

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="NF Orchestration & Reachability Simulator")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8100, help="Port to bind to")
    args = parser.parse_args()

    logger.info(f"Starting NF simulator on {args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port)
