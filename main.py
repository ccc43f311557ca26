"""Story Engine — dev launcher. Starts the API in watch mode."""

import argparse
import asyncio
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "13013")


async def _check_providers() -> int:
    from story_engine.config import build_registry, load_settings
    from story_engine.orchestrator import Orchestrator

    settings = load_settings()
    orchestrator = Orchestrator(build_registry(settings), settings)
    failures = 0
    for name in orchestrator.registry.available_providers():
        status = await orchestrator.check_provider_status(name)
        state = "up" if status.is_available else "DOWN"
        print(f"{name:<12} {state:<5} {status.response_time:8.1f} ms")
        failures += not status.is_available
    return failures


def main():
    parser = argparse.ArgumentParser(description="Story Engine dev launcher")
    parser.add_argument("--port", default=BACKEND_PORT,
                        help=f"Backend port (default: {BACKEND_PORT})")
    parser.add_argument("--no-reload", action="store_true",
                        help="Run without auto-reload")
    parser.add_argument("--check", action="store_true",
                        help="Probe every configured provider and exit")
    args = parser.parse_args()

    if args.check:
        sys.exit(1 if asyncio.run(_check_providers()) else 0)

    cmd = [sys.executable, "-m", "uvicorn", "story_api.app:app",
           "--host", HOST, "--port", str(args.port)]
    if not args.no_reload:
        cmd.append("--reload")

    print(f"Starting backend on http://localhost:{args.port} ...")
    proc = subprocess.Popen(cmd, cwd=ROOT, env=os.environ.copy())

    def shutdown(*_):
        print("\nShutting down...")
        proc.terminate()
        proc.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)
    proc.wait()


if __name__ == "__main__":
    main()
