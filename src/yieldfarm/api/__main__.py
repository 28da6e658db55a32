# src/yieldfarm/api/__main__.py
from __future__ import annotations

import os

import uvicorn

from yieldfarm.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so YIELDFARM_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from yieldfarm.api.app import create_app

    app = create_app()
    host = os.getenv("YIELDFARM_API_HOST", "127.0.0.1")
    port = int(os.getenv("YIELDFARM_API_PORT", "8080"))

    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
