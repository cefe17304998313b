"""
Server entry point (`docchat-server`).

Runs the ASGI app from server.asgi under uvicorn, using HOST / PORT /
LOG_LEVEL from the environment (.env is honoured). The WebSocket protocol
is pinned to websockets-sansio, whose upgrade parser honours
MAX_REQUEST_LINE_BYTES (see server.app.allow_long_request_lines).
"""

from __future__ import annotations

import uvicorn
from dotenv import load_dotenv

from config import AppConfig


def main() -> None:
    load_dotenv()
    config = AppConfig.load_from_env()

    uvicorn.run(
        "server.asgi:app",
        host=config.host,
        port=config.port,
        ws="websockets-sansio",
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
