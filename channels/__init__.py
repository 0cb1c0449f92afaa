"""Transports for the supported delivery channels."""
from channels.base import (
    Transport,
    TransportError,
    SubscriptionManager,
    RenderFunc,
)
from channels.email_adapter import MailgunTransport, SesTransport, SmtpTransport
from channels.sms_adapter import ElksSmsTransport
from channels.log_adapter import LogTransport
from channels.factory import create_email_transport, create_sms_transport

__all__ = [
    "Transport", "TransportError", "SubscriptionManager", "RenderFunc",
    "MailgunTransport", "SesTransport", "SmtpTransport", "ElksSmsTransport", "LogTransport",
    "create_email_transport", "create_sms_transport",
]
