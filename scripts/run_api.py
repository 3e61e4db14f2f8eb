"""Serve the webhook API with uvicorn.

Flags override the FITNESS_* environment for one run, e.g.
``python scripts/run_api.py --backend memory --port 3001``.
"""
from pathlib import Path
import argparse
import os
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import uvicorn


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run the fitness webhook API")
    parser.add_argument("--host", help="bind address (FITNESS_API_HOST)")
    parser.add_argument("--port", type=int, help="bind port (FITNESS_API_PORT)")
    parser.add_argument("--backend", choices=("json", "memory", "sql"), help="store backend (FITNESS_STORE_BACKEND)")
    parser.add_argument("--reload", action="store_true", default=None, help="restart on code changes")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    if args.backend:
        # Must be set before the app module reads its config.
        os.environ["FITNESS_STORE_BACKEND"] = args.backend

    from packages.config import API_HOST, API_PORT, RUN_MODE

    host = args.host or API_HOST
    port = args.port or API_PORT
    reload = args.reload if args.reload is not None else RUN_MODE != "prod"
    print(f"Webhook URL: http://{host}:{port}/api/webhook/health")
    uvicorn.run("apps.api.main:app", host=host, port=port, reload=reload, app_dir=str(ROOT))


if __name__ == "__main__":
    main()
