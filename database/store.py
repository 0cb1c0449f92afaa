"""
SQL repositories — Portable queries for PostgreSQL, MySQL, SQLite.

Each call opens its own short transaction via get_session(); the
dispatcher performs no transactions of its own around them.
"""
from __future__ import annotations

import structlog
from typing import Optional

from sqlalchemy import select

from database.models import JobRow, TemplateRow
from database.session import get_session
from database.store_base import (
    BaseJobRepository, BaseTemplateRepository,
    DuplicateTemplateError, JobNotFoundError, TemplateNotFoundError,
)
from models.schemas import Job, JobType, Template

logger = structlog.get_logger()


class SqlJobRepository(BaseJobRepository):
    """Job storage backed by any SQLAlchemy-supported database."""

    async def create(self, job: Job) -> Job:
        async with get_session() as db:
            db.add(JobRow(
                id=job.id,
                external_id=job.external_id,
                type=job.type.value,
                template_id=job.template_id,
                locale=job.locale,
                target=job.target,
                params=job.params,
                created_at=job.created_at,
                sent_at=job.sent_at,
            ))
        return job

    async def update(self, job: Job) -> Job:
        async with get_session() as db:
            row = await db.get(JobRow, job.id)
            if row is None:
                raise JobNotFoundError(job.id)
            row.external_id = job.external_id
            row.params = job.params
            row.sent_at = job.sent_at
        return job

    async def get(self, job_id: str) -> Optional[Job]:
        async with get_session() as db:
            row = await db.get(JobRow, job_id)
            return self._row_to_job(row) if row else None

    async def get_pending(self) -> list[Job]:
        async with get_session() as db:
            stmt = (
                select(JobRow)
                .where(JobRow.sent_at.is_(None))
                .order_by(JobRow.created_at)
            )
            result = await db.execute(stmt)
            return [self._row_to_job(r) for r in result.scalars()]

    @staticmethod
    def _row_to_job(row: JobRow) -> Job:
        return Job(
            id=row.id,
            external_id=row.external_id or "",
            type=JobType(row.type),
            template_id=row.template_id,
            locale=row.locale,
            target=row.target,
            params=row.params or {},
            created_at=row.created_at,
            sent_at=row.sent_at,
        )


class SqlTemplateRepository(BaseTemplateRepository):
    """Template storage backed by any SQLAlchemy-supported database."""

    async def get(self, template_id: str, locale: str) -> Template:
        async with get_session() as db:
            row = await db.get(TemplateRow, (template_id, locale))
            if row is None:
                raise TemplateNotFoundError(template_id, locale)
            return self._row_to_template(row)

    async def create(self, template: Template) -> Template:
        async with get_session() as db:
            if await db.get(TemplateRow, template.key) is not None:
                raise DuplicateTemplateError(template.template_id, template.locale)
            db.add(TemplateRow(
                template_id=template.template_id,
                locale=template.locale,
                enabled=template.enabled,
                description=template.description,
                parameters=template.parameters,
                update_parameters=template.update_parameters,
                subject=template.subject,
                text_body=template.text_body,
                html_body=template.html_body,
                created_at=template.created_at,
                updated_at=template.updated_at,
            ))
        return template

    async def update(self, template: Template) -> Template:
        template.touch()
        async with get_session() as db:
            row = await db.get(TemplateRow, template.key)
            if row is None:
                raise TemplateNotFoundError(template.template_id, template.locale)
            row.enabled = template.enabled
            row.description = template.description
            row.parameters = template.parameters
            row.update_parameters = template.update_parameters
            row.subject = template.subject
            row.text_body = template.text_body
            row.html_body = template.html_body
            row.updated_at = template.updated_at
        return template

    async def delete(self, template: Template) -> None:
        async with get_session() as db:
            row = await db.get(TemplateRow, template.key)
            if row is not None:
                await db.delete(row)

    @staticmethod
    def _row_to_template(row: TemplateRow) -> Template:
        return Template(
            template_id=row.template_id,
            locale=row.locale,
            enabled=row.enabled,
            description=row.description or "",
            parameters=row.parameters or {},
            update_parameters=row.update_parameters,
            subject=row.subject or "",
            text_body=row.text_body or "",
            html_body=row.html_body or "",
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
