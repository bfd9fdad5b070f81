"""
Allow-list loading and periodic reload.

``ConfigLoader.load`` reads the pub_id document and publishes a fresh snapshot.
When the document cannot be read or decoded, the first load publishes the
built-in default list; later loads keep whatever snapshot is already in effect.

``ConfigReloadService`` drives ``load`` on a fixed interval from a background
asyncio task for the lifetime of the app.
"""

import asyncio
from pathlib import Path
from typing import List, Optional

import structlog
from pydantic import ValidationError

from ..config import AuthSettings
from ..models.pub_ids import PubIdDocument
from .auth_store import AuthSnapshot, AuthStore
from .exceptions import ConfigLoadError
from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)


class ConfigLoader:
    """Reads the pub_id document and publishes snapshots into an ``AuthStore``."""

    def __init__(
        self,
        store: AuthStore,
        path: Path,
        default_pub_ids: List[str],
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.store = store
        self.path = Path(path)
        self.default_pub_ids = list(default_pub_ids)
        self.metrics = metrics

    @classmethod
    def from_settings(
        cls,
        store: AuthStore,
        settings: AuthSettings,
        metrics: Optional[MetricsCollector] = None,
    ) -> "ConfigLoader":
        return cls(
            store=store,
            path=settings.pub_ids_path,
            default_pub_ids=settings.default_pub_ids,
            metrics=metrics,
        )

    def read_document(self) -> PubIdDocument:
        """Read and decode the document; any failure becomes ``ConfigLoadError``."""
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise ConfigLoadError(
                f"Failed to open config file: {e}",
                details={"path": str(self.path)},
            ) from e

        try:
            return PubIdDocument.model_validate_json(raw)
        except ValidationError as e:
            raise ConfigLoadError(
                f"Failed to decode config file: {e.error_count()} error(s)",
                details={"path": str(self.path), "errors": e.errors(include_url=False)},
            ) from e

    def load(self) -> AuthSnapshot:
        """
        Load the document and publish it.

        Returns the snapshot in effect after the call. Never raises for an
        unreadable or malformed document.
        """
        try:
            document = self.read_document()
        except ConfigLoadError as e:
            if not self.store.has_snapshot:
                snapshot = AuthSnapshot.from_ids(self.default_pub_ids)
                self.store.publish(snapshot)
                logger.warning(
                    "Config load failed, using default config",
                    path=str(self.path),
                    error=str(e),
                    pub_ids_count=len(snapshot),
                )
            else:
                snapshot = self.store.current()
                logger.warning(
                    "Config reload failed, keeping previous config",
                    path=str(self.path),
                    error=str(e),
                    pub_ids_count=len(snapshot),
                )
            if self.metrics:
                self.metrics.record_config_reload(success=False, pub_ids_count=len(snapshot))
            return snapshot

        snapshot = AuthSnapshot.from_ids(document.valid_pub_ids)
        self.store.publish(snapshot)
        logger.info("Config loaded successfully", path=str(self.path), pub_ids_count=len(snapshot))

        if self.metrics:
            self.metrics.record_config_reload(success=True, pub_ids_count=len(snapshot))
        return snapshot


class ConfigReloadService:
    """
    Background service that reloads the allow list.

    Features:
    - Explicit start/stop tied to the app lifespan
    - File reads run in a worker thread
    - Loop errors are logged, never fatal
    """

    def __init__(self, loader: ConfigLoader, interval_seconds: float = 60) -> None:
        self.loader = loader
        self.interval = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None
        self._running = False

        logger.info("Config Reload Service initialized", interval_seconds=interval_seconds)

    async def start(self) -> None:
        """Start the reload loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_reload_loop())

        logger.info("Config Reload Service started")

    async def stop(self) -> None:
        """Stop the reload loop."""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Config Reload Service stopped")

    async def reload_now(self) -> AuthSnapshot:
        """Run one reload cycle immediately."""
        return await asyncio.to_thread(self.loader.load)

    async def _run_reload_loop(self) -> None:
        """Main reload loop."""
        while self._running:
            try:
                await asyncio.sleep(self.interval)
                logger.debug("Refreshing config")
                await self.reload_now()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Config reload loop error", error=str(e), error_type=type(e).__name__)

    def is_healthy(self) -> bool:
        """Check if the reload loop is running."""
        return self._running and self._task is not None and not self._task.done()
