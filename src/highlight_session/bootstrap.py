from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from loguru import logger

from highlight_session.app_config import AppConfig, RuntimeEnv
from highlight_session.errors import CleanupError, IncompleteSessionDataError, SessionStorageError
from highlight_session.lifecycle import HostLifecycle, LifecycleMonitor, Verdict, install_process_hooks
from highlight_session.logging_config import setup_logging
from highlight_session.models import Clock, SessionState, system_clock
from highlight_session.services.cleanup_service import SessionCleanupService
from highlight_session.services.restore_service import SessionRestoreService
from highlight_session.session import (
    HighlightStore,
    MediaStore,
    SessionContext,
    SessionRegistry,
    StaleSessionReaper,
    TieringPolicy,
    TranscriptStore,
)
from highlight_session.storage import DurableStore, LocalStorageTier, ScopedStore


@dataclass
class BootOutcome:
    verdict: Verdict
    state: SessionState | None = None
    cleaned_up: bool = False
    reaped: list[str] = field(default_factory=list)
    error: SessionStorageError | None = None


@dataclass
class SessionRuntime:
    tier: LocalStorageTier
    registry: SessionRegistry
    context: SessionContext
    media: MediaStore
    transcripts: TranscriptStore
    highlights: HighlightStore
    monitor: LifecycleMonitor
    host: HostLifecycle
    reaper: StaleSessionReaper
    restore_service: SessionRestoreService
    cleanup_service: SessionCleanupService
    log_descriptions: list[str] = field(default_factory=list)

    async def boot(self) -> BootOutcome:
        """Run the startup phase: reap, check the closing flag, then clean up or restore."""
        reaped = await self.reaper.reap()

        self.host.emit_cold_start()
        verdict = self.monitor.verdict or Verdict.INDETERMINATE

        if self.monitor.cleanup_requested:
            try:
                await self.cleanup_service.execute()
            except CleanupError as ex:
                logger.error(f"Deferred cleanup failed, will retry on next start: {ex}")
                return BootOutcome(verdict=verdict, reaped=reaped, error=ex)
            return BootOutcome(verdict=verdict, cleaned_up=True, reaped=reaped)

        try:
            state = await self.restore_service.restore()
        except IncompleteSessionDataError as ex:
            logger.warning(f"Previous session could not be restored: {ex}")
            return BootOutcome(verdict=verdict, reaped=reaped, error=ex)
        return BootOutcome(verdict=verdict, state=state, reaped=reaped)

    def close(self) -> None:
        # The monitor stays attached: termination signals arrive after close and
        # only touch the volatile tier.
        self.tier.close()


def bootstrap_runtime(
    app: AppConfig,
    env: RuntimeEnv,
    *,
    host: HostLifecycle | None = None,
    clock: Clock = system_clock,
    configure_logging: bool = True,
) -> SessionRuntime:
    log_descriptions: list[str] = []
    if configure_logging:
        log_descriptions = setup_logging(
            level=app.log_level,
            consumers=app.log_consumers,
            log_dir=app.durable_db_path(env).parent,
        )

    tier = LocalStorageTier(
        DurableStore(str(app.durable_db_path(env))),
        ScopedStore(str(app.scope_path(env))),
    )
    registry = SessionRegistry(tier, prefix=app.session_id_prefix, clock=clock)
    context = registry.open()

    media = MediaStore(tier, context, TieringPolicy(app.metadata_only_threshold_bytes))
    transcripts = TranscriptStore(tier, context)
    highlights = HighlightStore(tier, context)

    host = host or HostLifecycle()
    monitor = LifecycleMonitor(tier)
    monitor.attach(host)
    if app.process_hooks:
        install_process_hooks(host)

    logger.debug(f"Session runtime ready (session: {context.session_id})")
    return SessionRuntime(
        tier=tier,
        registry=registry,
        context=context,
        media=media,
        transcripts=transcripts,
        highlights=highlights,
        monitor=monitor,
        host=host,
        reaper=StaleSessionReaper(
            tier,
            context,
            ttl=timedelta(hours=app.session_ttl_hours),
            clock=clock,
        ),
        restore_service=SessionRestoreService(media, transcripts, highlights),
        cleanup_service=SessionCleanupService(tier, context, [media, transcripts, highlights]),
        log_descriptions=log_descriptions,
    )
