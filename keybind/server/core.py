"""
License server using FastAPI.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable

from fastapi import FastAPI

from keybind.common import Configurable, setup_logger
from keybind.common.config import Config
from keybind.common.models import utcnow

from .audit_log import AuditLog
from .keygen import KeyGenerator
from .notifier import build_notifier
from .routes import LicenseRoutes
from .services import LicenseService
from .store import LicenseStore

if TYPE_CHECKING:
    from keybind.common.interfaces import IAuditLog, ILicenseStore, IPiracyNotifier

OVERRIDABLE = [
    "server_host",
    "server_port",
    "admin_password",
    "data_dir",
    "log_level",
    "log_file",
]


class LicenseServer(Configurable):
    """Main license server class wiring store, handlers and routes.

    Keyword overrides take precedence over Config (and so over the
    environment). ``persist=False`` keeps licenses and audit entries in
    memory only. Collaborators can be injected directly, which is how the
    tests swap in notifiers and clocks.
    """

    def __init__(  # noqa: PLR0913
        self,
        config: Config | None = None,
        *,
        persist: bool = True,
        store: ILicenseStore | None = None,
        audit_log: IAuditLog | None = None,
        notifier: IPiracyNotifier | None = None,
        clock: Callable[[], datetime] = utcnow,
        **overrides: Any,
    ):
        self.config = config or Config()
        self.server_host: str
        self.server_port: int
        self.admin_password: str | None
        self.data_dir: Path
        self.log_level: int
        self.log_file: Path | None
        self.apply_overrides(overrides, self.config, OVERRIDABLE)
        self.data_dir = Path(self.data_dir)
        self.log_file = Path(self.log_file) if self.log_file else None

        self.logger = logging.getLogger("keybind")
        setup_logger(self.logger, self.log_level, self.log_file)

        if store is None:
            store = LicenseStore(
                self.data_dir / self.config.LICENSES_FILE_PATH.name
                if persist
                else None
            )
        if audit_log is None:
            audit_log = AuditLog(
                self.data_dir / self.config.AUDIT_LOG_FILE_PATH.name
                if persist
                else None
            )
        self.store = store
        self.audit_log = audit_log
        self.notifier = notifier or build_notifier(self.config)
        self.key_generator = KeyGenerator(prefix=self.config.KEY_PREFIX)

        self.service = LicenseService(
            config=self.config,
            store=self.store,
            audit_log=self.audit_log,
            notifier=self.notifier,
            key_generator=self.key_generator,
            clock=clock,
        )

        # Setup routes
        self.app = FastAPI(title="keybind license server", lifespan=self._lifespan)
        self.routes = LicenseRoutes(self.service, self.admin_password)
        self.routes.setup_routes(self.app)

        self.logger.info(
            "License server configured for http://%s:%s (data: %s)",
            self.server_host,
            self.server_port,
            self.data_dir if persist else "in-memory",
        )
        self.logger.info("Piracy notifier: %s", type(self.notifier).__name__)

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        yield
        self.close()

    def close(self) -> None:
        """Stop background alert delivery, dropping alerts not yet sent."""
        shutdown = getattr(self.notifier, "shutdown", None)
        if shutdown is not None:
            self.logger.info("Shutting down piracy notifier")
            shutdown(wait=False)
