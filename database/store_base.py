"""
Abstract repositories — Interfaces for all storage backends.

Implementations:
  - SqlJobRepository / SqlTemplateRepository           (SQLAlchemy async)
  - InMemoryJobRepository / InMemoryTemplateRepository (dict-based, no persistence)
  - FileJobRepository / FileTemplateRepository         (JSON files on disk)

The dispatcher only depends on these interfaces, so backends are
drop-in compatible.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from models.schemas import Job, Template


class TemplateNotFoundError(LookupError):
    """Raised by a template repository when (template_id, locale) does not exist."""

    def __init__(self, template_id: str, locale: str):
        self.template_id = template_id
        self.locale = locale
        super().__init__(f"Template not found: {template_id} ({locale})")


class DuplicateTemplateError(ValueError):
    def __init__(self, template_id: str, locale: str):
        self.template_id = template_id
        self.locale = locale
        super().__init__(f"Template already exists: {template_id} ({locale})")


class JobNotFoundError(LookupError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class BaseJobRepository(ABC):
    """Durable storage of jobs."""

    @abstractmethod
    async def create(self, job: Job) -> Job:
        ...

    @abstractmethod
    async def update(self, job: Job) -> Job:
        """Persist a changed job. Raises JobNotFoundError for unknown ids."""
        ...

    @abstractmethod
    async def get(self, job_id: str) -> Optional[Job]:
        ...

    @abstractmethod
    async def get_pending(self) -> list[Job]:
        """All jobs with sent_at = None, oldest first."""
        ...


class BaseTemplateRepository(ABC):
    """Durable storage of templates keyed by (template_id, locale)."""

    @abstractmethod
    async def get(self, template_id: str, locale: str) -> Template:
        """Return the template or raise TemplateNotFoundError."""
        ...

    @abstractmethod
    async def create(self, template: Template) -> Template:
        ...

    @abstractmethod
    async def update(self, template: Template) -> Template:
        ...

    @abstractmethod
    async def delete(self, template: Template) -> None:
        ...
