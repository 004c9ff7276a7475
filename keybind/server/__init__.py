"""
Entry point for the license server.
"""

from __future__ import annotations

import uvicorn

from keybind.common.config import Config

from .core import LicenseServer


def start_server(config: Config | None = None, **overrides: object) -> None:
    """Start the license server."""
    if config is None:
        config = Config()
    server = LicenseServer(config=config, **overrides)
    uvicorn.run(server.app, host=server.server_host, port=server.server_port)
