"""
Logging Transport — Development stand-in for a real provider.

Renders exactly what a provider would send, logs it and keeps the last
deliveries in memory. No network access.
"""
from __future__ import annotations

import structlog
from collections import deque
from dataclasses import dataclass

from channels.base import RenderFunc, Transport, render_email
from models.schemas import Job, JobType, Template

logger = structlog.get_logger()


@dataclass
class Delivery:
    job_id: str
    target: str
    template_id: str
    locale: str
    subject: str
    text: str
    html: str


class LogTransport(Transport):

    name = "log"

    def __init__(self, history: int = 100):
        self.deliveries: deque[Delivery] = deque(maxlen=history)

    async def send(self, job: Job, template: Template, render: RenderFunc) -> None:
        if job.type == JobType.EMAIL:
            subject, text, html = render_email(self, job, template, render)
        else:
            subject, html = "", ""
            text = self.render_part(render, "sms message", template.text_body, job, template)

        self.deliveries.append(Delivery(
            job_id=job.id,
            target=job.target,
            template_id=template.template_id,
            locale=template.locale,
            subject=subject,
            text=text,
            html=html,
        ))
        logger.info("message_logged",
                    job_id=job.id,
                    type=job.type.value,
                    to=job.target,
                    template_id=template.template_id,
                    locale=template.locale,
                    subject=subject,
                    text=text[:200])
