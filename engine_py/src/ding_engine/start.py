#!/usr/bin/env python3
"""Startup script for the DING Online sync relay"""

import uvicorn

from . import config


def main():
    print(f"Starting DING Online relay on {config.HOST}:{config.PORT}")
    print(f"Health check available at: http://{config.HOST}:{config.PORT}/health")
    print(f"WebSocket endpoint: ws://{config.HOST}:{config.PORT}/ws")

    uvicorn.run(
        "ding_engine.main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.RELOAD,
        log_level=config.LOG_LEVEL
    )


if __name__ == "__main__":
    main()
