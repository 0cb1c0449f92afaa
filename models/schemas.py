"""
Core data models for the notification dispatcher.
These are the universal types shared across all modules.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class JobType(str, Enum):
    EMAIL = "email"
    SMS = "sms"


# ──────────────────────────────────────────────────────────────
#  Job — one outbound send request
# ──────────────────────────────────────────────────────────────

class Job(BaseModel):
    """
    A single email or SMS send request, tracked from submission to delivery.

    `sent_at` is None while the job is pending. It is stamped exactly once,
    by a worker, after the transport reported success.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    external_id: str = ""                     # caller-side correlation id
    type: JobType
    template_id: str
    locale: str
    target: str                               # email address or phone number
    params: dict[str, Any] = {}
    created_at: datetime = Field(default_factory=_utcnow)
    sent_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.sent_at is None

    def mark_sent(self) -> None:
        self.sent_at = _utcnow()


# ──────────────────────────────────────────────────────────────
#  Template — localized message content
# ──────────────────────────────────────────────────────────────

class Template(BaseModel):
    """
    Localized message content keyed by (template_id, locale).

    Disabled templates are never delivered directly; they only mark that the
    locale exists and route resolution to the fallback locale.
    """
    template_id: str
    locale: str
    enabled: bool = False
    description: str = ""

    parameters: dict[str, Any] = {}          # last real job params seen
    update_parameters: bool = False          # capture params on next send

    subject: str = ""
    text_body: str = ""
    html_body: str = ""

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def key(self) -> tuple[str, str]:
        return (self.template_id, self.locale)

    def touch(self) -> None:
        self.updated_at = _utcnow()
