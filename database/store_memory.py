"""
In-memory repositories — Dict-backed storage for development and testing.

Features:
  - Zero dependencies (no database, no Redis)
  - Full interface compatibility with the SQL repositories
  - Stores and returns copies, so callers never share mutable state
    with the store (same observable behaviour as a real database)
  - All data lost on process restart

Best for: local development, unit tests, quick prototyping.
"""
from __future__ import annotations

import structlog
from typing import Optional

from database.store_base import (
    BaseJobRepository, BaseTemplateRepository,
    DuplicateTemplateError, JobNotFoundError, TemplateNotFoundError,
)
from models.schemas import Job, Template

logger = structlog.get_logger()


class InMemoryJobRepository(BaseJobRepository):

    def __init__(self):
        self._jobs: dict[str, Job] = {}               # id → job
        logger.info("inmemory_job_repository_initialized")

    async def create(self, job: Job) -> Job:
        self._jobs[job.id] = job.model_copy(deep=True)
        return job

    async def update(self, job: Job) -> Job:
        if job.id not in self._jobs:
            raise JobNotFoundError(job.id)
        self._jobs[job.id] = job.model_copy(deep=True)
        return job

    async def get(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def get_pending(self) -> list[Job]:
        pending = [j for j in self._jobs.values() if j.is_pending]
        pending.sort(key=lambda j: j.created_at)
        return [j.model_copy(deep=True) for j in pending]

    def stats(self) -> dict[str, int]:
        pending = sum(1 for j in self._jobs.values() if j.is_pending)
        return {"jobs": len(self._jobs), "pending": pending}


class InMemoryTemplateRepository(BaseTemplateRepository):

    def __init__(self):
        self._templates: dict[tuple[str, str], Template] = {}   # (id, locale) → template
        logger.info("inmemory_template_repository_initialized")

    async def get(self, template_id: str, locale: str) -> Template:
        tpl = self._templates.get((template_id, locale))
        if tpl is None:
            raise TemplateNotFoundError(template_id, locale)
        return tpl.model_copy(deep=True)

    async def create(self, template: Template) -> Template:
        if template.key in self._templates:
            raise DuplicateTemplateError(template.template_id, template.locale)
        self._templates[template.key] = template.model_copy(deep=True)
        return template

    async def update(self, template: Template) -> Template:
        if template.key not in self._templates:
            raise TemplateNotFoundError(template.template_id, template.locale)
        template.touch()
        self._templates[template.key] = template.model_copy(deep=True)
        return template

    async def delete(self, template: Template) -> None:
        self._templates.pop(template.key, None)

    def stats(self) -> dict[str, int]:
        return {"templates": len(self._templates)}
