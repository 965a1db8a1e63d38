#!/usr/bin/env python3
"""Launch the FastAPI server and both vibecore agents.

Usage:
    python scripts/run_all.py
    python scripts/run_all.py --demo-sensors   # push a fixed set of sensor readings first

Each agent runs in its own process on uAgents' asyncio loop; the
FastAPI server runs under uvicorn in another.

Ports:
    8000  FastAPI server  (REST + WebSocket)
    8001  Vibe Monitor
    8002  Group Coordinator
"""

from __future__ import annotations

import argparse
import importlib
import logging
import multiprocessing
import signal
import sys
import time
from pathlib import Path

_repo_root = Path(__file__).resolve().parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

from vibecore.config.settings import (  # noqa: E402
    GROUP_COORDINATOR_PORT,
    REDIS_URL,
    SERVER_HOST,
    SERVER_PORT,
    VIBE_MONITOR_PORT,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(name)-22s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run_all")

AGENTS = [
    ("vibe_monitor", VIBE_MONITOR_PORT),
    ("group_coordinator", GROUP_COORDINATOR_PORT),
]


# ── Process targets ──────────────────────────────────────────────────────

def _run_server():
    import uvicorn
    uvicorn.run(
        "vibecore.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        log_level="info",
        reload=False,
    )


def _run_agent(module_name: str):
    logging.basicConfig(level=logging.INFO)
    module = importlib.import_module(f"vibecore.agents.{module_name}")
    logger.info("Starting %s (address: %s)", module_name, module.agent.address)
    module.agent.run()


def _push_demo_sensors():
    """Friday evening at a bar, phone mostly in a pocket."""
    import redis

    from vibecore.collectors.platform import RedisSensors

    sensors = RedisSensors(redis.Redis.from_url(REDIS_URL, decode_responses=True))
    sensors.grant("motion", "screen", "location")
    sensors.push("motion", {"speed_mps": 0.1, "accuracy_m": 12})
    sensors.push("screen", {"screen_on_ratio": 0.2, "samples": 60})
    sensors.push("venue", {"categories": ["Bar", "Cocktail Lounge"], "dwell_minutes": 40, "distance_m": 15})
    logger.info("Demo sensor readings pushed to Redis")


# ── Main ─────────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(description="Run the vibecore server and agents")
    parser.add_argument("--demo-sensors", action="store_true", help="seed demo sensor readings")
    args = parser.parse_args()

    if args.demo_sensors:
        _push_demo_sensors()

    logger.info("=" * 60)
    logger.info("  vibecore")
    logger.info("=" * 60)
    logger.info("  FastAPI server  →  http://localhost:%d", SERVER_PORT)
    logger.info("  WebSocket       →  ws://localhost:%d/ws", SERVER_PORT)
    for name, port in AGENTS:
        logger.info("  %-18s →  port %d", name, port)
    logger.info("  Press Ctrl+C to stop all processes")
    logger.info("=" * 60)

    processes: list[multiprocessing.Process] = []

    p = multiprocessing.Process(target=_run_server, name="fastapi-server", daemon=True)
    p.start()
    processes.append(p)
    time.sleep(1)

    for name, port in AGENTS:
        p = multiprocessing.Process(target=_run_agent, args=(name,), name=f"agent-{name}", daemon=True)
        p.start()
        processes.append(p)
        logger.info("Agent %s started (pid %d, port %d)", name, p.pid, port)
        time.sleep(0.3)

    def _shutdown(signum, frame):
        logger.info("Shutting down all processes...")
        for proc in processes:
            if proc.is_alive():
                proc.terminate()
        for proc in processes:
            proc.join(timeout=5)
            if proc.is_alive():
                proc.kill()
        sys.exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    while True:
        for proc in processes:
            if not proc.is_alive():
                logger.warning("Process %s (pid %d) exited with code %s", proc.name, proc.pid, proc.exitcode)
        time.sleep(5)


if __name__ == "__main__":
    multiprocessing.set_start_method("spawn", force=True)
    main()
