#!/usr/bin/env python3
"""
Catpoint Edge Server

Starts the control API:
- Alarm / arming status
- Sensor registration and activation
- Camera image upload (cat detection)

Usage:
    catpoint-server
    # or
    uvicorn catpoint.api.app:build_app --factory --host 0.0.0.0 --port 8080
"""

import argparse

import uvicorn

from .config import get_settings


def main():
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Catpoint Edge Server")
    parser.add_argument("--host", default=settings.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    uvicorn.run(
        "catpoint.api.app:build_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
