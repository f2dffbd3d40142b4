"""Process-wide service container for the scan engine."""

from typing import Optional

import structlog

from .clients.ffmpeg_client import FFmpegClient
from .clients.ffprobe_client import FFProbeClient
from .common.config import Config, get_video_directories
from .core.db.catalog import CatalogRepository
from .core.db.connection import DatabaseConnection
from .core.db.migrator import Migrator
from .core.db.schedule_store import ScheduleSettingsStore
from .core.event_bus import ProgressHub
from .scan.checkpoint import CheckpointManager
from .scan.control import ScanControl
from .scan.discovery import DirectoryDiscoverer
from .scan.extractor import MetadataExtractor
from .scan.models import ScanMode, ScanResult
from .scan.orchestrator import ScanOrchestrator
from .scan.progress import ProgressCalculator
from .scan.resources import ResourceMonitor
from .scan.scheduler import ScanScheduler
from .scan.settings_store import ScanSettingsStore
from .scan.thumbnails import ThumbnailRenderer

logger = structlog.get_logger(__name__)

IDLE_CPU_PERCENT = 30.0


class MediaScanService:
    """
    Owns every long-lived scan component.

    Build one with :meth:`create` at process start, pass it to whoever needs
    it and call :meth:`close` on shutdown. There is no global instance.
    """

    def __init__(
        self,
        config: Config,
        db: DatabaseConnection,
        catalog: CatalogRepository,
        settings_store: ScanSettingsStore,
        schedule_store: ScheduleSettingsStore,
        hub: ProgressHub,
        control: ScanControl,
        monitor: ResourceMonitor,
        checkpoints: CheckpointManager,
        orchestrator: ScanOrchestrator,
        scheduler: ScanScheduler,
    ):
        self.config = config
        self.db = db
        self.catalog = catalog
        self.settings_store = settings_store
        self.schedule_store = schedule_store
        self.hub = hub
        self.control = control
        self.monitor = monitor
        self.checkpoints = checkpoints
        self.orchestrator = orchestrator
        self.scheduler = scheduler

    @classmethod
    async def create(
        cls,
        config: Config,
        ffprobe: Optional[FFProbeClient] = None,
        ffmpeg: Optional[FFmpegClient] = None,
    ) -> "MediaScanService":
        """Open the database, apply migrations, load settings and wire components."""
        config.resolve_paths(create_dirs=True)

        db = DatabaseConnection(
            db_path=config.get_database_path(),
            enable_wal=config.catalog.enable_wal_mode,
            timeout=config.catalog.connection_timeout,
        )
        conn = await db.connect()
        await Migrator().run_migrations(conn)

        catalog = CatalogRepository(db, transaction_timeout=config.catalog.transaction_timeout)
        settings_store = ScanSettingsStore(config.get_settings_path(), defaults=config.scan)
        await settings_store.load()
        schedule_store = ScheduleSettingsStore(db, defaults=config.schedule)

        hub = ProgressHub()
        control = ScanControl()
        monitor = ResourceMonitor(settings_provider=lambda: settings_store.current)
        checkpoints = CheckpointManager(db, validity_hours=config.catalog.checkpoint_validity_hours)

        ffprobe = ffprobe or FFProbeClient.from_config(config.ffprobe)
        ffmpeg = ffmpeg or FFmpegClient.from_config(config.thumbnail)

        orchestrator = ScanOrchestrator(
            discoverer=DirectoryDiscoverer(emit=hub.broadcast),
            extractor=MetadataExtractor(ffprobe, concurrency=config.ffprobe.batch_concurrency),
            catalog=catalog,
            checkpoints=checkpoints,
            control=control,
            monitor=monitor,
            hub=hub,
            roots_provider=lambda: get_video_directories(config),
            thumbnails=ThumbnailRenderer(
                ffmpeg,
                config.get_thumbnail_dir(),
                seek_ratio=config.thumbnail.seek_ratio,
            ),
            calculator=ProgressCalculator(),
        )

        async def run_scheduled() -> ScanResult:
            return await orchestrator.run_scan(mode=ScanMode.SCHEDULED)

        def cancel_current() -> None:
            scan_id = orchestrator.current_scan_id
            if scan_id is not None:
                orchestrator.cancel(scan_id)

        async def is_idle() -> bool:
            if orchestrator.is_updating:
                return False
            return await monitor.sample_cpu_percent() < IDLE_CPU_PERCENT

        scheduler = ScanScheduler(
            store=schedule_store,
            executor=run_scheduled,
            manual_scan_checker=lambda: orchestrator.is_updating,
            hub=hub,
            idle_checker=is_idle,
            timeout_canceller=cancel_current,
        )
        await scheduler.load()

        logger.info(
            "mediascan_service_created",
            db_path=str(config.get_database_path()),
            video_directories=len(get_video_directories(config)),
        )
        return cls(
            config=config,
            db=db,
            catalog=catalog,
            settings_store=settings_store,
            schedule_store=schedule_store,
            hub=hub,
            control=control,
            monitor=monitor,
            checkpoints=checkpoints,
            orchestrator=orchestrator,
            scheduler=scheduler,
        )

    async def start(self) -> None:
        await self.hub.start()
        await self.scheduler.start()

    async def close(self) -> None:
        """Stop background work, cancel any running scan and close the database."""
        await self.scheduler.stop()
        await self.orchestrator.shutdown()
        await self.scheduler.shutdown()
        await self.hub.stop()
        await self.db.close()
        logger.info("mediascan_service_closed")
