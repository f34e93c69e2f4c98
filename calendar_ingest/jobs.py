"""
Scheduled jobs.

Each job is one independent invocation: it opens its own connections, runs,
returns a JSON-serializable summary and closes everything. External cron
(or any scheduler) runs them via ``calendar-ingest <job>``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from calendar_ingest.configs.settings import Settings
from calendar_ingest.db import EventRepository, get_connection
from calendar_ingest.ingestion.orchestrator import load_orchestrator_from_config
from calendar_ingest.lifecycle.backfill import ImageBackfillJob
from calendar_ingest.lifecycle.cleanup import PlaceholderCleanupJob
from calendar_ingest.lifecycle.expiry import ImageExpiryJob
from calendar_ingest.lifecycle.image_search import UnsplashImageSearch
from calendar_ingest.lifecycle.object_store import SupabaseObjectStore

logger = logging.getLogger(__name__)

JobRunner = Callable[..., Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class ScheduledJob:
    name: str
    cron: str | None  # None: on demand only
    description: str
    runner: JobRunner

    def summary(self) -> str:
        return f"cron: {self.cron}" if self.cron else "on demand"


JOB_REGISTRY: dict[str, ScheduledJob] = {}


def register_job(name: str, cron: str | None, description: str):
    """Decorate an async runner to register it under ``name``."""

    def decorator(runner: JobRunner) -> JobRunner:
        JOB_REGISTRY[name] = ScheduledJob(name, cron, description, runner)
        return runner

    return decorator


def crontab_lines(command: str = "calendar-ingest") -> list[str]:
    """Crontab entries for every scheduled job."""
    return [f"{job.cron} {command} {job.name}" for job in JOB_REGISTRY.values() if job.cron]


@register_job("ingest", "0 */4 * * *", "Fetch all feeds and upsert events")
async def run_ingest(settings: Settings, sources: list[str] | None = None) -> dict[str, Any]:
    orchestrator = load_orchestrator_from_config(settings)
    result = await orchestrator.run_ingestion(sources=sources)
    return result.to_dict()


@register_job("backfill-images", "0 4 * * *", "Attach re-hosted images to upcoming events")
async def run_backfill(settings: Settings) -> dict[str, Any]:
    store = SupabaseObjectStore.from_settings(settings)
    conn = get_connection(settings)
    try:
        async with httpx.AsyncClient(
            headers={"User-Agent": settings.USER_AGENT}, timeout=settings.HTTP_TIMEOUT_S
        ) as client:
            search = None
            if settings.UNSPLASH_ACCESS_KEY:
                search = UnsplashImageSearch(
                    client,
                    settings.UNSPLASH_ACCESS_KEY.get_secret_value(),
                    base_url=settings.UNSPLASH_API_URL,
                    timeout=settings.HTTP_TIMEOUT_S,
                )
            job = ImageBackfillJob(
                EventRepository(conn),
                store,
                search,
                client,
                limit=settings.BACKFILL_BATCH_LIMIT,
                delay_s=settings.BACKFILL_DELAY_S,
                download_timeout=settings.HTTP_TIMEOUT_S,
            )
            result = await job.run()
    finally:
        conn.close()
    return result.to_dict()


@register_job("expire-images", "0 5 * * *", "Delete stored images for long-past events")
async def run_expiry(settings: Settings) -> dict[str, Any]:
    store = SupabaseObjectStore.from_settings(settings)
    conn = get_connection(settings)
    try:
        job = ImageExpiryJob(EventRepository(conn), store, settings.IMAGE_RETENTION_DAYS)
        result = await job.run()
    finally:
        conn.close()
    return result.to_dict()


@register_job("cleanup-placeholders", None, "Replace CSS gradient strings in image_url")
async def run_cleanup(settings: Settings) -> dict[str, Any]:
    conn = get_connection(settings)
    try:
        result = await PlaceholderCleanupJob(EventRepository(conn)).run()
    finally:
        conn.close()
    return result.to_dict()
