"""Construction of the long-lived components from settings."""

import logging
from dataclasses import dataclass

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from interaction_analytics.aggregates import AggregateMaintainer
from interaction_analytics.classification import (
    BatchClassifier,
    ClassificationScheduler,
    QualityModelClient,
)
from interaction_analytics.config import Settings
from interaction_analytics.db import create_engine, create_session_maker
from interaction_analytics.ingestion import BackgroundDispatcher, IngestionGateway
from interaction_analytics.reporting import StatsService, TrainingDataExporter
from interaction_analytics.store import EventStore
from interaction_analytics.workqueue import EvaluationQueue

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a running process needs, wired together once."""

    settings: Settings
    engine: AsyncEngine
    session_maker: async_sessionmaker[AsyncSession]
    redis: "redis.Redis"
    queue: EvaluationQueue
    store: EventStore
    maintainer: AggregateMaintainer
    dispatcher: BackgroundDispatcher
    gateway: IngestionGateway
    quality_model: QualityModelClient | None
    classifier: BatchClassifier
    scheduler: ClassificationScheduler
    stats: StatsService
    exporter: TrainingDataExporter

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        redis_client: "redis.Redis | None" = None,
    ) -> "Services":
        """Build all components.

        Args:
            settings: Application settings
            redis_client: Existing Redis client to use instead of ``REDIS_URL``
        """
        engine = create_engine(settings.DATABASE_URL, echo=settings.DEBUG)
        session_maker = create_session_maker(engine)
        redis_client = redis_client or redis.from_url(settings.REDIS_URL)

        queue = EvaluationQueue(
            redis_client,
            prefix=settings.EVAL_QUEUE_PREFIX,
            default_ttl=settings.EVAL_QUEUE_TTL_SECONDS,
        )
        store = EventStore(session_maker)
        maintainer = AggregateMaintainer(session_maker)
        dispatcher = BackgroundDispatcher(
            concurrency=settings.BACKGROUND_CONCURRENCY,
            max_pending=settings.BACKGROUND_MAX_PENDING,
        )
        gateway = IngestionGateway(
            store,
            queue,
            maintainer,
            dispatcher,
            queue_ttl_seconds=settings.EVAL_QUEUE_TTL_SECONDS,
        )

        quality_model = None
        if settings.quality_model_enabled:
            quality_model = QualityModelClient(
                api_key=settings.GEMINI_API_KEY,
                model=settings.GEMINI_MODEL,
                base_url=settings.GEMINI_BASE_URL,
                timeout=settings.QUALITY_MODEL_TIMEOUT,
            )
        else:
            logger.info("GEMINI_API_KEY not set; model tier disabled")

        classifier = BatchClassifier(
            store, queue, quality_model=quality_model, batch_size=settings.EVAL_BATCH_SIZE
        )
        scheduler = ClassificationScheduler(classifier, interval=settings.EVAL_INTERVAL_SECONDS)

        return cls(
            settings=settings,
            engine=engine,
            session_maker=session_maker,
            redis=redis_client,
            queue=queue,
            store=store,
            maintainer=maintainer,
            dispatcher=dispatcher,
            gateway=gateway,
            quality_model=quality_model,
            classifier=classifier,
            scheduler=scheduler,
            stats=StatsService(session_maker),
            exporter=TrainingDataExporter(session_maker),
        )

    async def close(self, drain_timeout: float | None = 10.0) -> None:
        """Stop the scheduler, finish side-effects and release connections."""
        await self.scheduler.stop()
        await self.dispatcher.drain(timeout=drain_timeout)
        await self.redis.aclose()
        await self.engine.dispose()
