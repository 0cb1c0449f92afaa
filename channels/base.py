"""
Transports — Delivery mechanisms the dispatcher hands rendered jobs to.

Provides:
- TransportError: structured error for failed deliveries
- RenderFunc: the renderer callable passed to every send
- Transport: abstract base every provider implements
- SubscriptionManager: optional capability for providers that track
  unsubscribes (used by the admin surface, not by the send path)
- render_email: shared subject/text/html rendering for email providers
"""
from __future__ import annotations

import abc
import structlog
from typing import Callable, Protocol, runtime_checkable

from models.schemas import Job, Template

logger = structlog.get_logger()

USER_AGENT = "NotifyDispatch/1.0"

# render(body, params, html=False) -> str; html=True selects autoescaping
RenderFunc = Callable[..., str]


# ══════════════════════════════════════════════════════════════
#  ERRORS
# ══════════════════════════════════════════════════════════════

class TransportError(Exception):
    """Base exception for all transport operations."""

    def __init__(self, message: str, transport: str = "", retryable: bool = False):
        self.transport = transport
        self.retryable = retryable
        super().__init__(message)


# ══════════════════════════════════════════════════════════════
#  TRANSPORT
# ══════════════════════════════════════════════════════════════

class Transport(abc.ABC):
    """
    Delivers one job. Implementations render whatever bodies they need
    with `render` before talking to the provider, so a render failure
    never results in a partial send.
    """

    name: str = "transport"

    @abc.abstractmethod
    async def send(self, job: Job, template: Template, render: RenderFunc) -> None:
        """Deliver the job. Raises TransportError (or a render error) on failure."""
        ...

    async def close(self) -> None:
        """Release network clients. Default: nothing to release."""
        return None

    def render_part(
        self, render: RenderFunc, part: str, body: str, job: Job, template: Template,
        html: bool = False,
    ) -> str:
        """Render one body with the job's params; html=True escapes substituted values."""
        try:
            if html:
                return render(body, job.params, html=True)
            return render(body, job.params)
        except Exception as e:
            raise TransportError(
                f"Failed to render {part} for job {job.id} template {template.template_id}: {e}",
                transport=self.name,
            ) from e


@runtime_checkable
class SubscriptionManager(Protocol):
    """Optional capability: providers that keep per-address unsubscribe lists."""

    async def get_unsubscribed_templates(self, email: str) -> list[str]:
        ...

    async def resubscribe_to_all(self, email: str) -> None:
        ...

    async def resubscribe_to_template(self, email: str, template_id: str) -> None:
        ...


def render_email(
    transport: Transport, job: Job, template: Template, render: RenderFunc,
    skip_text: bool = False,
) -> tuple[str, str, str]:
    """Render (subject, text, html) for an email job; text is empty when skipped."""
    subject = transport.render_part(render, "subject", template.subject, job, template)
    html = transport.render_part(render, "html body", template.html_body, job, template, html=True)
    text = ""
    if not skip_text:
        text = transport.render_part(render, "text body", template.text_body, job, template)
    return subject, text, html
