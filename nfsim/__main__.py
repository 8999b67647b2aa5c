# File location: nfsim/__main__.py
# Command line entry point
# `serve` runs the HTTP API, `shell` an interactive compose or NF terminal

import argparse
import asyncio
import logging
import sys

from .config.settings import SimulationSettings
from .models import LineKind, NFType
from .simulation import Simulation

logger = logging.getLogger(__name__)

PROMPT = "$ "


def print_line(line):
    if line.kind == LineKind.ERROR:
        print(line.text, file=sys.stderr, flush=True)
    else:
        print(line.text, flush=True)


async def run_shell(nf: str = None, seed: int = None, time_scale: float = None):
    overrides = {}
    if seed is not None:
        overrides["random_seed"] = seed
    if time_scale is not None:
        overrides["time_scale"] = time_scale
    sim = Simulation(SimulationSettings.from_env(**overrides))

    nf_id = None
    if nf:
        # Bring up the core first so the NF terminal has something to talk to
        await sim.orchestrator.bring_up_all()
        try:
            match = sim.store.find_nf_by_type(NFType(nf))
        except ValueError:
            match = sim.store.nfs.get(nf)
        if match is None:
            print(f"Unknown network function: {nf}", file=sys.stderr)
            await sim.shutdown()
            return 1
        nf_id = match.id

    session = sim.terminal(nf_id)
    for line in session.banner().lines:
        print_line(line)

    loop = asyncio.get_running_loop()
    try:
        while True:
            print(PROMPT, end="", flush=True)
            command = await loop.run_in_executor(None, sys.stdin.readline)
            if not command:
                break
            result = await session.execute(command, on_line=print_line)
            if result.data.get("exit"):
                break
    finally:
        await sim.shutdown()
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(prog="nfsim", description="NF Orchestration & Reachability Simulator")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    serve.add_argument("--port", type=int, default=8100, help="Port to bind to")

    shell = subparsers.add_parser("shell", help="Interactive terminal")
    shell.add_argument("--nf", help="Attach to an NF (type such as AMF, or NF id)")
    shell.add_argument("--seed", type=int, help="Random seed")
    shell.add_argument("--time-scale", type=float, help="Real seconds per simulated second")

    args = parser.parse_args(argv)

    if args.command == "serve":
        import uvicorn
        from .api import app

        logger.info(f"Starting NF simulator on {args.host}:{args.port}")
        uvicorn.run(app, host=args.host, port=args.port)
        return 0

    logging.basicConfig(level=logging.WARNING)
    return asyncio.run(run_shell(args.nf, args.seed, args.time_scale))


if __name__ == "__main__":
    sys.exit(main())
