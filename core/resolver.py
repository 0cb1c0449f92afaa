"""
Template Resolver — Picks the template a job is rendered with.

Resolution (two levels, self-healing):

  (id, locale)           enabled   → use it
                         disabled  → fallback
                         missing   → create placeholder at (id, locale)
                                     (best effort), then fallback
  (id, fallback_locale)  present   → use it, enabled or not
                         missing   → create placeholder there and use it

Any other repository error propagates.

Missing templates are turned into visible, editable placeholders instead of
hard failures. The price is that recipients get the diagnostic placeholder
text until an operator fills the template in.
"""
from __future__ import annotations

import structlog

from database.store_base import BaseTemplateRepository, TemplateNotFoundError
from models.schemas import Template

logger = structlog.get_logger()

PLACEHOLDER_SUBJECT = "[Notification dispatcher] template missing"
PLACEHOLDER_BODY = "A template is missing for template id: {template_id}, locale: {locale}"


def build_placeholder(template_id: str, locale: str) -> Template:
    """Inert stand-in: disabled, and learns parameters from the first job."""
    body = PLACEHOLDER_BODY.format(template_id=template_id, locale=locale)
    return Template(
        template_id=template_id,
        locale=locale,
        enabled=False,
        update_parameters=True,
        subject=PLACEHOLDER_SUBJECT,
        text_body=body,
        html_body=body,
    )


class TemplateResolver:

    def __init__(self, repo: BaseTemplateRepository, fallback_locale: str):
        self.repo = repo
        self.fallback_locale = fallback_locale

    async def resolve(self, template_id: str, locale: str) -> Template:
        try:
            tpl = await self.repo.get(template_id, locale)
        except TemplateNotFoundError:
            try:
                await self.create_placeholder(template_id, locale)
            except Exception as e:
                logger.error("placeholder_template_create_failed",
                             template_id=template_id,
                             locale=locale,
                             error=str(e))
            return await self._fallback(template_id)

        if tpl.enabled:
            return tpl

        logger.debug("template_disabled_using_fallback",
                     template_id=template_id,
                     locale=locale,
                     fallback_locale=self.fallback_locale)
        return await self._fallback(template_id)

    async def _fallback(self, template_id: str) -> Template:
        try:
            return await self.repo.get(template_id, self.fallback_locale)
        except TemplateNotFoundError:
            return await self.create_placeholder(template_id, self.fallback_locale)

    async def create_placeholder(self, template_id: str, locale: str) -> Template:
        tpl = build_placeholder(template_id, locale)
        await self.repo.create(tpl)
        logger.warning("placeholder_template_created",
                       template_id=template_id,
                       locale=locale)
        return tpl
