"""Engine runtime: observability, storage, expiry scheduling and background workers."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .core.config import Settings, settings as default_settings
from .core.database import async_session_factory, close_db, engine as default_engine, init_db, session_scope
from .core.observability import (
    configure_logging,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .services.booking_service import BookingService
from .services.catalog import CatalogGateway
from .services.engine import ReservationEngine
from .workers.expiry_scheduler import AsyncioExpiryScheduler, ExpiryScheduler
from .workers.hold_expiry_worker import HoldExpiryWorker
from .workers.manager import WorkerManager

logger = logging.getLogger(__name__)


class EngineRuntime:
    """
    Long-lived wiring shared by every tenant-scoped ``ReservationEngine``.

    Owns the expiry scheduler and the hold expiry sweep; callers open an
    engine per unit of work with ``open_engine``.
    """

    def __init__(
        self,
        catalog: CatalogGateway,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        scheduler: Optional[ExpiryScheduler] = None,
        config: Optional[Settings] = None,
        run_sweep: bool = True,
    ):
        self.catalog = catalog
        self.session_factory = session_factory or async_session_factory
        self.config = config or default_settings
        self.scheduler = scheduler or AsyncioExpiryScheduler(self.expire_from_scheduler)
        self.worker_manager = WorkerManager()
        if run_sweep:
            self.worker_manager.register(
                "hold_expiry",
                HoldExpiryWorker(
                    interval_seconds=self.config.expiry_sweep_interval_seconds,
                    batch_size=self.config.expiry_sweep_batch_size,
                    session_factory=self.session_factory,
                    scheduler=self.scheduler,
                ),
            )

    async def expire_from_scheduler(self, booking_id: str, tenant_id: str) -> None:
        """Expiry job callback: expire the booking in a fresh session."""
        async with session_scope(self.session_factory) as db:
            service = BookingService(db, tenant_id, scheduler=self.scheduler, config=self.config)
            await service.expire_booking(booking_id, trigger="scheduler")

    @asynccontextmanager
    async def open_engine(self, tenant_id: str) -> AsyncIterator[ReservationEngine]:
        """
        Open a tenant-scoped engine on a new session.

        Yields:
            ReservationEngine: Engine bound to ``tenant_id``
        """
        async with session_scope(self.session_factory) as db:
            yield ReservationEngine(db, tenant_id, self.catalog, self.scheduler, self.config)

    async def start(self) -> None:
        await self.worker_manager.start_all()

    async def stop(self) -> None:
        await self.worker_manager.stop_all()
        if isinstance(self.scheduler, AsyncioExpiryScheduler):
            await self.scheduler.shutdown()


@asynccontextmanager
async def lifespan(
    catalog: CatalogGateway,
    db_engine: AsyncEngine | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    scheduler: Optional[ExpiryScheduler] = None,
    create_schema: bool = False,
    observability: bool = True,
    config: Optional[Settings] = None,
) -> AsyncIterator[EngineRuntime]:
    """
    Engine lifespan context manager.

    Handles startup and shutdown of the runtime: logging, tracing and
    metrics, optional schema creation, the expiry scheduler and workers.

    Args:
        catalog: Catalog gateway used for product validation and pricing
        db_engine: Engine to initialize and dispose, defaults to the module-level one
        session_factory: Session factory, defaults to one bound to ``db_engine``
        scheduler: Expiry scheduler, defaults to the in-process asyncio one
        create_schema: Create tables with ``metadata.create_all`` (development and tests)
        observability: Configure logging, tracing and metrics
        config: Engine settings, defaults to the module-level ones

    Yields:
        EngineRuntime: The running runtime
    """
    bind = db_engine or default_engine
    if session_factory is None and db_engine is not None:
        session_factory = async_sessionmaker(
            db_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    config = config or default_settings

    logger.info("Starting reservation engine runtime")
    logger.info(f"Environment: {config.environment}")

    runtime = EngineRuntime(
        catalog, session_factory=session_factory, scheduler=scheduler, config=config
    )
    try:
        if observability:
            configure_logging()
            setup_structured_logging()
            setup_tracing()
            setup_metrics()
            instrument_sqlalchemy(bind)
            logger.info("Observability setup completed")

        if create_schema:
            await init_db(bind)
            logger.info("Database initialized successfully")

        await runtime.start()
        logger.info("Background workers started successfully")
    except Exception as e:
        logger.error(f"Failed to initialize runtime: {e}")
        raise

    logger.info("Runtime startup complete")

    try:
        yield runtime
    finally:
        logger.info("Shutting down reservation engine runtime")
        await runtime.stop()
        logger.info("Background workers stopped")
        await close_db(bind)
        logger.info("Database connections closed")
        logger.info("Runtime shutdown complete")
