"""
Transport Factory — instantiates the configured provider for email and SMS.

Configuration in settings.yaml:
    email:
      provider: mailgun          # "log" | "mailgun" | "ses" | "smtp" | "" (disabled)
      credentials:
        domain: mg.example.com
        api_key: ${MAILGUN_API_KEY}
        from_email: "Example <no-reply@example.com>"

    # SES: provider: ses, credentials: from_email, region (default eu-west-1),
    # optional access_key_id / secret_access_key (else the AWS default chain)

    sms:
      provider: 46elks           # "log" | "46elks" | "" (disabled)
      credentials:
        from_number: Example
        username: ${ELKS_USERNAME}
        password: ${ELKS_PASSWORD}

A disabled provider yields None; the dispatcher then rejects sends of
that type.
"""
from __future__ import annotations

import structlog
from typing import Any, Optional

from channels.base import Transport
from config.settings import TransportConfig

logger = structlog.get_logger()

EMAIL_PROVIDERS = ("log", "mailgun", "ses", "smtp")
SMS_PROVIDERS = ("log", "46elks")


class TransportConfigError(ValueError):
    pass


def _require(creds: dict[str, Any], provider: str, *keys: str) -> None:
    missing = [k for k in keys if not creds.get(k)]
    if missing:
        raise TransportConfigError(f"{provider} transport missing credentials: {', '.join(missing)}")


def create_email_transport(config: TransportConfig) -> Optional[Transport]:
    provider = (config.provider or "").lower()
    creds = config.credentials or {}

    if not provider:
        logger.info("email_transport_disabled")
        return None

    if provider == "log":
        from channels.log_adapter import LogTransport
        transport: Transport = LogTransport()

    elif provider == "mailgun":
        from channels.email_adapter import MailgunTransport
        _require(creds, provider, "domain", "api_key", "from_email")
        transport = MailgunTransport(
            domain=creds["domain"],
            api_key=creds["api_key"],
            from_email=creds["from_email"],
            reply_to=creds.get("reply_to", ""),
            skip_text=bool(creds.get("skip_text", False)),
            base_url=creds.get("base_url", ""),
        )

    elif provider == "ses":
        from channels.email_adapter import SesTransport
        _require(creds, provider, "from_email")
        transport = SesTransport(
            from_email=creds["from_email"],
            region_name=creds.get("region", "eu-west-1"),
            access_key_id=creds.get("access_key_id", ""),
            secret_access_key=creds.get("secret_access_key", ""),
            endpoint_url=creds.get("endpoint_url", ""),
        )

    elif provider == "smtp":
        from channels.email_adapter import SmtpTransport
        _require(creds, provider, "host", "from_email")
        transport = SmtpTransport(
            host=creds["host"],
            port=int(creds.get("port", 587)),
            from_email=creds["from_email"],
            from_name=creds.get("from_name", ""),
            username=creds.get("username", ""),
            password=creds.get("password", ""),
            use_tls=bool(creds.get("use_tls", False)),
            start_tls=creds.get("start_tls"),
            timeout=float(creds.get("timeout", 30.0)),
            skip_text=bool(creds.get("skip_text", False)),
        )

    else:
        raise TransportConfigError(
            f"Unsupported email provider: {provider}. Supported: {', '.join(EMAIL_PROVIDERS)}"
        )

    logger.info("email_transport_created", provider=provider)
    return transport


def create_sms_transport(config: TransportConfig) -> Optional[Transport]:
    provider = (config.provider or "").lower()
    creds = config.credentials or {}

    if not provider:
        logger.info("sms_transport_disabled")
        return None

    if provider == "log":
        from channels.log_adapter import LogTransport
        transport: Transport = LogTransport()

    elif provider == "46elks":
        from channels.sms_adapter import ElksSmsTransport
        _require(creds, provider, "from_number", "username", "password")
        transport = ElksSmsTransport(
            from_number=creds["from_number"],
            username=creds["username"],
            password=creds["password"],
            api_url=creds.get("api_url", ""),
        )

    else:
        raise TransportConfigError(
            f"Unsupported sms provider: {provider}. Supported: {', '.join(SMS_PROVIDERS)}"
        )

    logger.info("sms_transport_created", provider=provider)
    return transport
