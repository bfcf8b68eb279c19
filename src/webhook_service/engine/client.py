"""WebhookEngine — central engine client owning all services."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from webhook_service.cache.client import CacheClient
    from webhook_service.config.settings import AppConfig
    from webhook_service.datastore.client import Datastore
    from webhook_service.engine.incoming.processor import IncomingProcessor
    from webhook_service.engine.incoming.registry import ProviderRegistry
    from webhook_service.engine.services.delivery_service import DeliveryService
    from webhook_service.engine.services.delivery_worker import DeliveryWorker
    from webhook_service.engine.services.dispatcher import EventDispatcher
    from webhook_service.engine.services.endpoint_service import EndpointService
    from webhook_service.engine.services.rate_limiter import RateLimiter
    from webhook_service.engine.services.retry_scheduler import RetryScheduler
    from webhook_service.engine.services.sender import WebhookSender
    from webhook_service.metrics.collector import EngineMetrics
    from webhook_service.notifications.service import EventBus, EventRelay
    from webhook_service.taskmanager.manager import TaskManager
    from webhook_service.taskmanager.pool import WorkerPool

logger = logging.getLogger(__name__)

# Error messages
_ERR_NOT_INITIALIZED = "Engine not initialized. Call initialize() first."

DELIVERY_POOL = "deliveries"
INCOMING_POOL = "incoming"


class WebhookEngine:
    """Central engine that owns infrastructure, services and background work.

    Lifecycle::

        engine = WebhookEngine(config)
        await engine.initialize()
        await engine.dispatcher.dispatch(tenant_id, "order.created", event_id, payload)
        await engine.close()
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        registry: ProviderRegistry | None = None,
        metrics: EngineMetrics | None = None,
    ) -> None:
        self._config = config
        self._initialized = False
        self._registry = registry
        self._external_metrics = metrics

        # Infrastructure
        self._datastore: Datastore | None = None
        self._cache: CacheClient | None = None
        self._sender: WebhookSender | None = None
        self._metrics: EngineMetrics | None = None
        self._event_bus: EventBus | None = None
        self._relay: EventRelay | None = None
        self._delivery_pool: WorkerPool | None = None
        self._incoming_pool: WorkerPool | None = None
        self._task_manager: TaskManager | None = None

        # Services
        self._endpoint_service: EndpointService | None = None
        self._delivery_service: DeliveryService | None = None
        self._rate_limiter: RateLimiter | None = None
        self._dispatcher: EventDispatcher | None = None
        self._delivery_worker: DeliveryWorker | None = None
        self._retry_scheduler: RetryScheduler | None = None
        self._incoming_processor: IncomingProcessor | None = None

    async def initialize(self) -> None:
        """Open storage, build services and start background workers.

        Raises:
            RuntimeError: If already initialized.
        """
        if self._initialized:
            msg = "Engine already initialized"
            raise RuntimeError(msg)

        from webhook_service.cache.client import CacheClient
        from webhook_service.datastore.client import Datastore
        from webhook_service.engine.incoming.processor import IncomingProcessor
        from webhook_service.engine.incoming.registry import default_registry
        from webhook_service.engine.services.delivery_service import DeliveryService
        from webhook_service.engine.services.delivery_worker import DeliveryWorker
        from webhook_service.engine.services.dispatcher import EventDispatcher
        from webhook_service.engine.services.endpoint_service import EndpointService
        from webhook_service.engine.services.rate_limiter import RateLimiter
        from webhook_service.engine.services.retry_scheduler import RetryScheduler
        from webhook_service.engine.services.sender import WebhookSender
        from webhook_service.metrics.collector import EngineMetrics
        from webhook_service.notifications.service import EventBus, EventRelay
        from webhook_service.taskmanager.manager import TaskManager
        from webhook_service.taskmanager.pool import WorkerPool
        from webhook_service.taskmanager.tasks import register_default_jobs

        # Storage
        self._datastore = Datastore(self._config.db)
        await self._datastore.open()
        await self._datastore.migrate()

        self._cache = CacheClient(self._config.cache)
        await self._cache.connect()

        self._sender = WebhookSender(self._config.delivery)
        await self._sender.connect()

        self._metrics = self._external_metrics or EngineMetrics()

        # Services
        self._endpoint_service = EndpointService(self)
        self._delivery_service = DeliveryService(self)
        self._rate_limiter = RateLimiter(self)
        self._dispatcher = EventDispatcher(self)
        self._delivery_worker = DeliveryWorker(self)
        self._retry_scheduler = RetryScheduler(self)
        self._incoming_processor = IncomingProcessor(
            self, self._registry or default_registry(self._config.incoming)
        )

        # Worker pools
        self._delivery_pool = WorkerPool(
            DELIVERY_POOL,
            concurrency=self._config.delivery.workers,
            queue_size=self._config.delivery.queue_size,
            metrics=self._metrics,
        )
        self._incoming_pool = WorkerPool(
            INCOMING_POOL,
            concurrency=self._config.incoming.workers,
            queue_size=self._config.incoming.queue_size,
            metrics=self._metrics,
        )
        await self._delivery_pool.start()
        await self._incoming_pool.start()

        # Event bus -> dispatcher
        self._event_bus = EventBus()
        await self._event_bus.start()
        self._relay = EventRelay(self._event_bus, self._dispatcher.dispatch_event)
        await self._relay.start()

        if self._config.task.enabled:
            self._task_manager = TaskManager(
                metrics=self._metrics,
                cache=self._cache,
                lock_ttl=self._config.task.lock_ttl_seconds,
            )
            register_default_jobs(self._task_manager, self)
            await self._task_manager.start()

        self._initialized = True
        logger.info("Webhook engine initialized (db=%s)", self._config.db.engine)

    async def close(self) -> None:
        """Gracefully shut down all services and connections.

        Can be called multiple times (idempotent).
        """
        if not self._initialized:
            return

        # Producers first, then consumers, then storage
        if self._task_manager is not None:
            await self._task_manager.stop()
            self._task_manager = None
        if self._relay is not None:
            await self._relay.stop()
            self._relay = None
        if self._event_bus is not None:
            await self._event_bus.stop()
            self._event_bus = None
        if self._incoming_pool is not None:
            await self._incoming_pool.stop()
            self._incoming_pool = None
        if self._delivery_pool is not None:
            await self._delivery_pool.stop()
            self._delivery_pool = None

        self._endpoint_service = None
        self._delivery_service = None
        self._rate_limiter = None
        self._dispatcher = None
        self._delivery_worker = None
        self._retry_scheduler = None
        self._incoming_processor = None
        self._metrics = None

        if self._sender is not None:
            await self._sender.close()
            self._sender = None
        if self._cache is not None:
            await self._cache.close()
            self._cache = None
        if self._datastore is not None:
            await self._datastore.close()
            self._datastore = None

        self._initialized = False
        logger.info("Webhook engine closed")

    # ------------------------------------------------------------------
    # Work submission
    # ------------------------------------------------------------------

    def submit_delivery(self, delivery_id: str) -> bool:
        """Queue an attempt for *delivery_id* on the delivery pool.

        A dropped submission is harmless: the row stays in storage and the
        retry sweep picks it up.
        """
        pool = self._delivery_pool
        if pool is None:
            return False
        worker = self.delivery_worker
        return pool.submit(lambda: worker.deliver(delivery_id))

    def submit_incoming(self, incoming_id: str) -> bool:
        """Queue handler execution for a stored inbound webhook.

        A dropped submission is picked up again by the incoming recovery job.
        """
        pool = self._incoming_pool
        if pool is None:
            return False
        processor = self.incoming_processor
        return pool.submit(lambda: processor.process(incoming_id))

    async def drain(self) -> None:
        """Wait until both worker pools are idle (tests and shutdown hooks)."""
        if self._incoming_pool is not None:
            await self._incoming_pool.join()
        if self._delivery_pool is not None:
            await self._delivery_pool.join()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def datastore(self) -> Datastore:
        """Get the datastore instance.

        Raises:
            RuntimeError: If engine not initialized.
        """
        if self._datastore is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._datastore

    @property
    def cache(self) -> CacheClient:
        if self._cache is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._cache

    @property
    def sender(self) -> WebhookSender:
        if self._sender is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._sender

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._event_bus

    @property
    def endpoint_service(self) -> EndpointService:
        if self._endpoint_service is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._endpoint_service

    @property
    def delivery_service(self) -> DeliveryService:
        if self._delivery_service is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._delivery_service

    @property
    def rate_limiter(self) -> RateLimiter:
        if self._rate_limiter is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._rate_limiter

    @property
    def dispatcher(self) -> EventDispatcher:
        if self._dispatcher is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._dispatcher

    @property
    def delivery_worker(self) -> DeliveryWorker:
        if self._delivery_worker is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._delivery_worker

    @property
    def retry_scheduler(self) -> RetryScheduler:
        if self._retry_scheduler is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._retry_scheduler

    @property
    def incoming_processor(self) -> IncomingProcessor:
        if self._incoming_processor is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._incoming_processor

    @property
    def metrics(self) -> EngineMetrics | None:
        """Engine metrics (None if not initialized)."""
        return self._metrics

    @property
    def task_manager(self) -> TaskManager | None:
        """Task manager (None if cron jobs are disabled)."""
        return self._task_manager

    @property
    def delivery_pool(self) -> WorkerPool | None:
        return self._delivery_pool

    @property
    def incoming_pool(self) -> WorkerPool | None:
        return self._incoming_pool

    async def health_check(self) -> dict[str, str]:
        """Component statuses ('ok', 'error', 'not_initialized', 'disabled')."""
        status = {
            "engine": "ok" if self._initialized else "not_initialized",
            "datastore": "unknown",
            "cache": "unknown",
            "workers": "unknown",
            "tasks": "unknown",
        }
        if not self._initialized:
            return status

        status["datastore"] = "ok" if self._datastore and await self._datastore.ping() else "error"
        status["cache"] = "ok" if self._cache and self._cache.is_connected else "error"
        pools_up = all(
            pool is not None and pool.is_running
            for pool in (self._delivery_pool, self._incoming_pool)
        )
        status["workers"] = "ok" if pools_up else "error"
        if self._task_manager is None:
            status["tasks"] = "disabled"
        else:
            status["tasks"] = "ok" if self._task_manager.is_running else "error"
        return status
