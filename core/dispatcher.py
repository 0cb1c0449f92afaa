"""
Dispatcher — Owns the end-to-end send path and its lifecycle.

  send_email / send_sms
      → build Job → persist (job repo) → enqueue (worker pool)
  worker
      → resolve template (locale fallback, placeholders)
      → capture example params if the template asks for it
      → transport.send(job, template, render)
      → stamp sent_at → persist

Delivery is at-least-once. A job that fails anywhere after submission
stays pending in the job repository and is retried, unchanged, the next
time the process starts; there is no in-process retry or attempt cap, so
a job that can never render is retried on every start.
"""
from __future__ import annotations

import asyncio
import structlog
from typing import Any, Optional

from channels.base import Transport
from core.renderer import Renderer
from core.resolver import TemplateResolver
from database.store_base import BaseJobRepository, BaseTemplateRepository
from job_queue.worker_pool import WorkerPool
from models.schemas import Job, JobType, Template

logger = structlog.get_logger()


class ConfigurationError(Exception):
    """Missing repository or transport."""
    pass


class DispatchError(Exception):
    """Raised when a job cannot be processed."""
    pass


class Dispatcher:
    """
    Usage:
        dispatcher = Dispatcher(job_repo, template_repo, email_transport=...)
        await dispatcher.start()               # workers up, pending jobs requeued
        await dispatcher.send_email("welcome", "sv", "a@x.com", "", {"name": "Ann"})
        await dispatcher.shutdown(stop_event)  # returns after stop_event is set
    """

    def __init__(
        self,
        job_repo: BaseJobRepository,
        template_repo: BaseTemplateRepository,
        email_transport: Optional[Transport] = None,
        sms_transport: Optional[Transport] = None,
        renderer: Optional[Renderer] = None,
        fallback_locale: str = "en",
        capacity: int = 1000,
        worker_count: int = 5,
        enqueue_timeout: float = 5.0,
        max_pending_enqueues: int = 1000,
    ):
        if template_repo is None:
            raise ConfigurationError("Missing template repository")
        if job_repo is None:
            raise ConfigurationError("Missing job repository")

        self.job_repo = job_repo
        self.template_repo = template_repo
        self.email_transport = email_transport
        self.sms_transport = sms_transport
        self.renderer = renderer or Renderer()
        self.resolver = TemplateResolver(template_repo, fallback_locale)
        self.pool = WorkerPool(
            self._handle_job,
            capacity=capacity,
            worker_count=worker_count,
            enqueue_timeout=enqueue_timeout,
            max_pending_enqueues=max_pending_enqueues,
        )

    @property
    def fallback_locale(self) -> str:
        return self.resolver.fallback_locale

    # ══════════════════════════════════════════════════════════
    #  LIFECYCLE
    # ══════════════════════════════════════════════════════════

    async def start(self) -> int:
        """Start the workers and requeue every job still pending in storage."""
        self.pool.start()

        pending = await self.job_repo.get_pending()
        for job in pending:
            self.pool.enqueue(job)

        logger.info("dispatcher_started",
                    requeued=len(pending),
                    workers=self.pool.worker_count,
                    fallback_locale=self.fallback_locale,
                    email=self.email_transport is not None,
                    sms=self.sms_transport is not None)
        return len(pending)

    async def shutdown(self, stop: asyncio.Event) -> None:
        """
        Block until `stop` is set, then stop the workers.

        In-flight jobs finish; jobs still buffered are abandoned in memory
        and picked up again on the next start (they are still pending).
        """
        await stop.wait()
        await self.close()

    async def close(self) -> None:
        await self.pool.stop()
        for transport in {t for t in (self.email_transport, self.sms_transport) if t}:
            await transport.close()
        logger.info("dispatcher_stopped", abandoned=self.pool.qsize())

    # ══════════════════════════════════════════════════════════
    #  SUBMISSION
    # ══════════════════════════════════════════════════════════

    async def send_email(
        self,
        template_id: str,
        locale: str,
        email: str,
        external_id: str = "",
        params: Optional[dict[str, Any]] = None,
    ) -> Job:
        if self.email_transport is None:
            raise ConfigurationError("No email transport configured")
        return await self._submit(JobType.EMAIL, template_id, locale, email, external_id, params)

    async def send_sms(
        self,
        template_id: str,
        locale: str,
        number: str,
        external_id: str = "",
        params: Optional[dict[str, Any]] = None,
    ) -> Job:
        if self.sms_transport is None:
            raise ConfigurationError("No sms transport configured")
        return await self._submit(JobType.SMS, template_id, locale, number, external_id, params)

    async def _submit(
        self,
        job_type: JobType,
        template_id: str,
        locale: str,
        target: str,
        external_id: str,
        params: Optional[dict[str, Any]],
    ) -> Job:
        job = Job(
            type=job_type,
            external_id=external_id or "",
            template_id=template_id,
            locale=locale,
            target=target,
            params=dict(params or {}),
        )
        # persisted before it is queued, so a crash never loses it
        await self.job_repo.create(job)
        self.pool.enqueue(job)

        logger.info("job_submitted",
                    job_id=job.id,
                    type=job_type.value,
                    template_id=template_id,
                    locale=locale,
                    external_id=job.external_id)
        return job

    # ══════════════════════════════════════════════════════════
    #  PROCESSING
    # ══════════════════════════════════════════════════════════

    async def _handle_job(self, job: Job) -> None:
        """Worker entry point: process, then stamp sent_at on success."""
        if not job.is_pending:
            logger.info("job_already_sent", job_id=job.id)
            return

        log = logger.bind(job_id=job.id,
                          type=job.type.value,
                          template_id=job.template_id,
                          locale=job.locale)
        try:
            await self.process(job)
        except Exception as e:
            log.error("job_processing_failed", error=str(e), exc_info=True)
            return

        job.mark_sent()
        try:
            await self.job_repo.update(job)
        except Exception as e:
            log.error("job_update_failed", error=str(e), exc_info=True)
            return

        log.info("job_sent", sent_at=job.sent_at.isoformat())

    async def process(self, job: Job) -> None:
        """Resolve, capture params, render and send one job. Raises on any failure."""
        template = await self.resolver.resolve(job.template_id, job.locale)

        if template.update_parameters:
            # persisted before sending: a crash after this point must not re-capture
            template.parameters = dict(job.params)
            template.update_parameters = False
            await self.template_repo.update(template)
            logger.info("template_parameters_captured",
                        template_id=template.template_id,
                        locale=template.locale,
                        job_id=job.id)

        transport = self._transport_for(job)
        await transport.send(job, template, self.renderer.render)

    def _transport_for(self, job: Job) -> Transport:
        if job.type == JobType.SMS:
            transport = self.sms_transport
        elif job.type == JobType.EMAIL:
            transport = self.email_transport
        else:
            raise DispatchError(f"Unknown job type {job.type}")

        if transport is None:
            raise ConfigurationError(f"No {job.type.value} transport configured")
        return transport

    # ══════════════════════════════════════════════════════════
    #  PREVIEW
    # ══════════════════════════════════════════════════════════

    def render(self, template: Template, job: Job) -> tuple[str, str, str]:
        """(subject, text, html) for a template and job, e.g. to validate an edit."""
        return self.renderer.render_job(template, job)
