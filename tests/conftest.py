"""Shared test fixtures for the notification dispatcher."""
import asyncio
from typing import Any, Optional

import pytest
import pytest_asyncio

from channels.base import RenderFunc, Transport, TransportError, render_email
from core.dispatcher import Dispatcher
from core.renderer import Renderer
from database.store_memory import InMemoryJobRepository, InMemoryTemplateRepository
from models.schemas import Job, JobType, Template


class RecordingTransport(Transport):
    """Renders like a real provider and records what would have been sent."""

    name = "recording"

    def __init__(self, fail: bool = False, gate: Optional[asyncio.Event] = None):
        self.fail = fail
        self.gate = gate
        self.sent: list[dict[str, Any]] = []
        self.attempts = 0
        self.started = asyncio.Event()

    async def send(self, job: Job, template: Template, render: RenderFunc) -> None:
        self.attempts += 1
        if job.type == JobType.EMAIL:
            subject, text, html = render_email(self, job, template, render)
        else:
            subject, html = "", ""
            text = self.render_part(render, "sms message", template.text_body, job, template)

        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise TransportError("provider unavailable", self.name, retryable=True)

        self.sent.append({
            "job_id": job.id,
            "target": job.target,
            "template_id": template.template_id,
            "locale": template.locale,
            "subject": subject,
            "text": text,
            "html": html,
        })


def make_template(
    template_id: str = "welcome",
    locale: str = "en",
    enabled: bool = True,
    subject: str = "Hi {{ name }}",
    text_body: str = "Hello {{ name }}",
    html_body: str = "<p>Hello {{ name }}</p>",
    **kwargs,
) -> Template:
    return Template(
        template_id=template_id,
        locale=locale,
        enabled=enabled,
        subject=subject,
        text_body=text_body,
        html_body=html_body,
        **kwargs,
    )


@pytest.fixture
def job_repo() -> InMemoryJobRepository:
    return InMemoryJobRepository()


@pytest.fixture
def template_repo() -> InMemoryTemplateRepository:
    return InMemoryTemplateRepository()


@pytest.fixture
def email_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def sms_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest_asyncio.fixture
async def dispatcher(job_repo, template_repo, email_transport, sms_transport):
    d = Dispatcher(
        job_repo=job_repo,
        template_repo=template_repo,
        email_transport=email_transport,
        sms_transport=sms_transport,
        renderer=Renderer(static_params={"company": "Example AB"}),
        fallback_locale="en",
        worker_count=3,
    )
    await d.start()
    yield d
    await d.close()


@pytest.fixture
def eventually():
    """Poll an (optionally async) predicate until it holds or time runs out."""

    async def _wait(predicate, timeout: float = 2.0, interval: float = 0.01):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            result = predicate()
            if asyncio.iscoroutine(result):
                result = await result
            if result:
                return result
            if loop.time() >= deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(interval)

    return _wait
