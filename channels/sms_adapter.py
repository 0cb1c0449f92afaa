"""
SMS Transport — 46elks HTTP API.

Provides:
- GSM-7 vs Unicode detection for accurate segment counting
- Segment counting for billing awareness (logged per send)
- Form-encoded POST with basic auth, retried on network errors
"""
from __future__ import annotations

import structlog
from typing import Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from channels.base import USER_AGENT, RenderFunc, Transport, TransportError
from models.schemas import Job, Template

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
#  GSM-7 CHARACTER SET & SEGMENT COUNTING
# ══════════════════════════════════════════════════════════════

# GSM-7 basic character set (includes space, digits, common punctuation, Latin letters)
_GSM7_CHARS = set(
    "@£$¥èéùìòÇ\nØø\rÅåΔ_ΦΓΛΩΠΨΣΘΞÆæßÉ !\"#¤%&'()*+,-./0123456789:;<=>?"
    "¡ABCDEFGHIJKLMNOPQRSTUVWXYZÄÖÑÜ§¿abcdefghijklmnopqrstuvwxyzäöñüà"
)

# Extended GSM-7 (takes 2 bytes each): ^{}[~]|\€
_GSM7_EXTENDED = set("^{}[]~|\\€")


def is_gsm7(text: str) -> bool:
    """Check if all characters in text are in the GSM-7 charset."""
    return all(c in _GSM7_CHARS or c in _GSM7_EXTENDED for c in text)


def segment_count(text: str) -> int:
    """
    Calculate SMS segment count based on encoding.

    GSM-7: 160 chars single / 153 chars per segment (7 chars for UDH header)
    Unicode: 70 chars single / 67 chars per segment
    """
    if not text:
        return 0

    if is_gsm7(text):
        char_count = sum(2 if c in _GSM7_EXTENDED else 1 for c in text)
        if char_count <= 160:
            return 1
        return (char_count + 152) // 153
    if len(text) <= 70:
        return 1
    return (len(text) + 66) // 67


# ══════════════════════════════════════════════════════════════
#  46ELKS TRANSPORT
# ══════════════════════════════════════════════════════════════

class ElksSmsTransport(Transport):
    """Sends the rendered text body through the 46elks SMS API."""

    name = "46elks"
    API_URL = "https://api.46elks.com/a1/sms"

    def __init__(
        self,
        from_number: str,
        username: str,
        password: str,
        api_url: str = "",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.from_number = from_number
        self.username = username
        self.password = password
        self.api_url = api_url or self.API_URL
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0))
        return self._client

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        reraise=True,
    )
    async def _post(self, data: dict[str, str]) -> httpx.Response:
        client = await self._get_client()
        return await client.post(
            self.api_url,
            data=data,
            auth=(self.username, self.password),
            headers={"User-Agent": USER_AGENT},
        )

    async def send(self, job: Job, template: Template, render: RenderFunc) -> None:
        message = self.render_part(render, "sms message", template.text_body, job, template)

        try:
            resp = await self._post({
                "from": self.from_number,
                "to": job.target,
                "message": message,
            })
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to send sms: {e}", self.name, retryable=True) from e

        if resp.status_code >= 300 or resp.status_code <= 199:
            logger.error("elks_api_error",
                         status=resp.status_code,
                         body=resp.text[:500],
                         job_id=job.id)
            raise TransportError(
                f"Unexpected response code {resp.status_code} received from 46elks",
                self.name,
                retryable=resp.status_code >= 500,
            )

        logger.info("sms_sent",
                    provider=self.name,
                    job_id=job.id,
                    to=job.target,
                    segments=segment_count(message))

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
