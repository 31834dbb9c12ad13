import uvicorn
import os
import sys
from pathlib import Path
import asyncio

# Ensure project root is on sys.path when launched as a plain script
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

DEFAULT_PORT = 3000


def _resolve_port() -> int:
    port_env = os.environ.get("PORT") or os.environ.get("APP_PORT") or str(DEFAULT_PORT)
    try:
        return int(port_env)
    except ValueError:
        return DEFAULT_PORT


if __name__ == "__main__":
    # On Windows, use Proactor event loop policy so asyncio.subprocess works (required by Playwright)
    if sys.platform.startswith("win"):
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

    os.environ.setdefault("LOG_LEVEL", "INFO")
    host = os.environ.get("APP_HOST", "0.0.0.0")
    port = _resolve_port()
    try:
        # Single worker: the browser session is process-wide
        uvicorn.run("server.main:app", host=host, port=port, log_level=os.environ.get("LOG_LEVEL", "info").lower())
    except KeyboardInterrupt:
        print("\n[run_server] shutdown requested (KeyboardInterrupt)")
