"""Factory classes for creating configured service instances."""

import functools
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import requests

from ..processors import multithread_process_batch, serial_process_batch
from .models import PipelineSettings
from .observability import MetricsCollector, StructuredLogger
from .protocols import AuditLog, ContentStore, HttpSessionProtocol, LoggerProtocol, WebsiteStore
from .resolvers import ImageSourceResolver
from .services import (
    BatchOrchestrator,
    BatchProcessorFn,
    ImageCatalogService,
    ImageProcessingService,
    SingleImageService,
)
from .sinks import SinkWriter
from .stores import InMemoryAuditLog, InMemoryContentStore, InMemoryWebsiteStore
from .transforms import ImageTransformService
from .wordpress import HttpFetcher


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(name: str, level: Optional[int] = None) -> LoggerProtocol:
        """Create a structured logger nested under the package logger."""
        return StructuredLogger(name, level)


class HttpSessionFactory:
    """Factory for creating HTTP session instances."""

    @staticmethod
    def create_session() -> HttpSessionProtocol:
        session = requests.Session()
        session.headers.update({"Cache-Control": "no-cache", "Pragma": "no-cache"})
        return session  # type: ignore


def select_batch_processor(max_workers: int) -> BatchProcessorFn:
    """Sequential for one worker, a bounded thread pool otherwise."""
    if max_workers <= 1:
        return serial_process_batch
    return functools.partial(multithread_process_batch, max_workers=max_workers)


@dataclass
class Pipeline:
    """All services of one configured pipeline, sharing the same stores."""

    settings: PipelineSettings
    orchestrator: BatchOrchestrator
    catalog: ImageCatalogService
    single_image: SingleImageService
    websites: WebsiteStore
    contents: ContentStore
    audit_log: AuditLog
    metrics: MetricsCollector


class PipelineFactory:
    """Factory for creating the complete processing pipeline."""

    @staticmethod
    def create_pipeline(
        session: Optional[HttpSessionProtocol] = None,
        websites: Optional[WebsiteStore] = None,
        contents: Optional[ContentStore] = None,
        audit_log: Optional[AuditLog] = None,
        settings: Optional[PipelineSettings] = None,
        logger: Optional[LoggerProtocol] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> Pipeline:
        """Create a fully configured pipeline."""

        # Create default dependencies if not provided
        if settings is None:
            settings = PipelineSettings.from_env()
        if session is None:
            session = HttpSessionFactory.create_session()
        if logger is None:
            logger = LoggerFactory.create_logger(
                "pipeline", logging.DEBUG if settings.is_development else None
            )
        websites = websites if websites is not None else InMemoryWebsiteStore()
        contents = contents if contents is not None else InMemoryContentStore()
        audit_log = audit_log if audit_log is not None else InMemoryAuditLog()
        metrics = MetricsCollector()

        # Create services
        fetcher = HttpFetcher(session, settings)
        resolver = ImageSourceResolver(websites, contents, fetcher, settings)
        transformer = ImageTransformService(settings.software_tag, rng=rng)
        sink = SinkWriter(contents, audit_log, resolver.client_for)
        processing_service = ImageProcessingService(
            resolver, transformer, sink, logger, metrics
        )

        orchestrator = BatchOrchestrator(
            processing_service=processing_service,
            batch_processor=select_batch_processor(settings.max_workers),
            logger=logger,
            metrics_collector=metrics,
        )

        return Pipeline(
            settings=settings,
            orchestrator=orchestrator,
            catalog=ImageCatalogService(websites, contents, resolver, logger),
            single_image=SingleImageService(fetcher, transformer, logger),
            websites=websites,
            contents=contents,
            audit_log=audit_log,
            metrics=metrics,
        )
