"""
Email Transports — Mailgun HTTP API, AWS SES and plain SMTP.

Provides:
- MailgunTransport: sends through the Mailgun messages API, tags each
  message with its template id, and exposes the Mailgun unsubscribe list
  (SubscriptionManager)
- SesTransport: SES SendEmail through aioboto3, UTF-8 content, tagged
  with the template id
- SmtpTransport: multipart/alternative message over SMTP (aiosmtplib)

All of them render subject, html and text before contacting the provider.
"""
from __future__ import annotations

import structlog
from email.header import Header
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Any, Optional

import aioboto3
import aiosmtplib
import httpx
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from channels.base import USER_AGENT, RenderFunc, Transport, TransportError, render_email
from models.schemas import Job, Template

logger = structlog.get_logger()


class MailgunTransport(Transport):
    """Mailgun REST API transport with unsubscribe management."""

    name = "mailgun"
    BASE_URL = "https://api.mailgun.net/v3"

    def __init__(
        self,
        domain: str,
        api_key: str,
        from_email: str,
        reply_to: str = "",
        skip_text: bool = False,
        base_url: str = "",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.domain = domain
        self.api_key = api_key
        self.from_email = from_email
        self.reply_to = reply_to
        self.skip_text = skip_text
        self.base_url = f"{(base_url or self.BASE_URL).rstrip('/')}/{domain}"
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        reraise=True,
    )
    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        client = await self._get_client()
        return await client.request(
            method, f"{self.base_url}{path}", auth=("api", self.api_key), **kwargs,
        )

    # ── Send ──────────────────────────────────────────────────

    async def send(self, job: Job, template: Template, render: RenderFunc) -> None:
        subject, text, html = render_email(self, job, template, render, skip_text=self.skip_text)

        data: dict[str, Any] = {
            "from": self.from_email,
            "to": job.target,
            "subject": subject,
            "html": html,
            "o:tag": template.template_id,
        }
        if text:
            data["text"] = text
        if self.reply_to:
            data["h:Reply-To"] = self.reply_to

        try:
            resp = await self._request("POST", "/messages", data=data)
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to send message: {e}", self.name, retryable=True) from e

        if resp.status_code >= 300:
            logger.error("mailgun_api_error",
                         status=resp.status_code,
                         body=resp.text[:500],
                         job_id=job.id)
            raise TransportError(
                f"Unexpected response code {resp.status_code} received from mailgun",
                self.name,
                retryable=resp.status_code >= 500,
            )

        logger.info("email_sent",
                    provider=self.name,
                    job_id=job.id,
                    to=job.target,
                    template_id=template.template_id)

    # ── Unsubscribes ──────────────────────────────────────────

    async def get_unsubscribed_templates(self, email: str) -> list[str]:
        try:
            resp = await self._request("GET", f"/unsubscribes/{email}")
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to retrieve unsubscribes for {email}: {e}", self.name) from e

        if resp.status_code == 404:
            return []
        if resp.status_code >= 300:
            raise TransportError(
                f"Failed to retrieve unsubscribes for {email}: status {resp.status_code}", self.name,
            )
        return list(resp.json().get("tags") or [])

    async def resubscribe_to_all(self, email: str) -> None:
        await self._delete_unsubscribe(email, params=None,
                                       what=f"resubscribe email {email} to all templates")

    async def resubscribe_to_template(self, email: str, template_id: str) -> None:
        await self._delete_unsubscribe(email, params={"tag": template_id},
                                       what=f"remove unsubscription for email {email} and template {template_id}")

    async def _delete_unsubscribe(self, email: str, params: Optional[dict[str, str]], what: str) -> None:
        try:
            resp = await self._request("DELETE", f"/unsubscribes/{email}", params=params)
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to {what}: {e}", self.name) from e
        if resp.status_code >= 300:
            raise TransportError(f"Failed to {what}: status {resp.status_code}", self.name)
        logger.info("email_resubscribed", email=email, template_id=(params or {}).get("tag", "*"))

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


class SesTransport(Transport):
    """
    AWS SES SendEmail. Credentials come from the default AWS chain unless
    given explicitly; endpoint_url points at a local SES stand-in.
    """

    name = "ses"
    CHARSET = "UTF-8"
    RETRYABLE_CODES = {"Throttling", "ThrottlingException", "ServiceUnavailable", "InternalFailure"}

    def __init__(
        self,
        from_email: str,
        region_name: str = "eu-west-1",
        access_key_id: str = "",
        secret_access_key: str = "",
        endpoint_url: str = "",
        session: Optional[Any] = None,
    ):
        self.from_email = from_email
        self._client_config: dict[str, Any] = {"region_name": region_name}
        if access_key_id and secret_access_key:
            self._client_config.update(
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
            )
        if endpoint_url:
            self._client_config["endpoint_url"] = endpoint_url
        self._session = session

    def _get_session(self):
        if self._session is None:
            self._session = aioboto3.Session()
        return self._session

    def _content(self, data: str) -> dict[str, str]:
        return {"Charset": self.CHARSET, "Data": data}

    def build_request(self, job: Job, template: Template, subject: str, text: str, html: str) -> dict[str, Any]:
        body = {"Html": self._content(html)}
        if text:
            body["Text"] = self._content(text)
        return {
            "Source": self.from_email,
            "Destination": {"ToAddresses": [job.target], "CcAddresses": []},
            "Message": {"Subject": self._content(subject), "Body": body},
            "Tags": [{"Name": "template", "Value": template.template_id}],
        }

    async def send(self, job: Job, template: Template, render: RenderFunc) -> None:
        subject, text, html = render_email(self, job, template, render)
        request = self.build_request(job, template, subject, text, html)

        try:
            async with self._get_session().client("ses", **self._client_config) as ses:
                resp = await ses.send_email(**request)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            logger.error("ses_api_error", code=code, error=str(e), job_id=job.id)
            raise TransportError(
                f"Failed to send email: {e}", self.name, retryable=code in self.RETRYABLE_CODES,
            ) from e
        except BotoCoreError as e:
            raise TransportError(f"Failed to send email: {e}", self.name, retryable=True) from e

        logger.info("email_sent",
                    provider=self.name,
                    job_id=job.id,
                    to=job.target,
                    template_id=template.template_id,
                    message_id=resp.get("MessageId", ""))


class SmtpTransport(Transport):
    """Email over SMTP; one connection per message."""

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int = 587,
        from_email: str = "",
        from_name: str = "",
        username: str = "",
        password: str = "",
        use_tls: bool = False,
        start_tls: Optional[bool] = None,
        timeout: float = 30.0,
        skip_text: bool = False,
    ):
        self.host = host
        self.port = port
        self.from_email = from_email
        self.from_name = from_name
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.start_tls = start_tls
        self.timeout = timeout
        self.skip_text = skip_text

    def build_message(self, job: Job, subject: str, text: str, html: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["Subject"] = Header(subject, "utf-8")
        message["From"] = formataddr((self.from_name, self.from_email))
        message["To"] = job.target
        message["Message-ID"] = make_msgid(domain=self.from_email.rpartition("@")[2] or None)
        if text:
            message.attach(MIMEText(text, "plain", "utf-8"))
        if html:
            message.attach(MIMEText(html, "html", "utf-8"))
        return message

    async def send(self, job: Job, template: Template, render: RenderFunc) -> None:
        subject, text, html = render_email(self, job, template, render, skip_text=self.skip_text)
        message = self.build_message(job, subject, text, html)

        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                use_tls=self.use_tls,
                start_tls=self.start_tls,
                timeout=self.timeout,
            )
        except aiosmtplib.SMTPException as e:
            raise TransportError(f"SMTP delivery failed: {e}", self.name, retryable=True) from e

        logger.info("email_sent",
                    provider=self.name,
                    job_id=job.id,
                    to=job.target,
                    template_id=template.template_id)
