"""
Renderer — Expands template bodies with Jinja2 in a sandbox.

Every call builds the effective parameters from the process-wide static
parameters overlaid with the job's own parameters (job values win), then
parses and renders the body from scratch. Parsed templates are not cached,
so an edited template is picked up by the very next send.

HTML bodies go through a second, autoescaping environment: every
substituted value is escaped unless it is already Markup. Subjects, text
and SMS bodies are rendered verbatim.

Helpers (e.g. encoders) are registered once per process and exposed both
as filters and as globals:

    {{ id | base64 }}      {{ base64(id) }}
"""
from __future__ import annotations

import base64
import urllib.parse
from collections.abc import Callable, Mapping
from typing import Any, Optional

import jinja2
import structlog
from jinja2.sandbox import SandboxedEnvironment

from models.schemas import Job, Template

logger = structlog.get_logger()


class RenderError(Exception):
    """A template body failed to parse or expand."""

    def __init__(self, message: str, body: str = ""):
        self.body = body
        super().__init__(message)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def b64encode(value: Any) -> str:
    """URL-safe base64 of the value's text form (ints are rendered in base 10)."""
    return base64.urlsafe_b64encode(_to_text(value).encode("utf-8")).decode("ascii")


def urlquote(value: Any) -> str:
    return urllib.parse.quote(_to_text(value), safe="")


DEFAULT_HELPERS: dict[str, Callable[..., Any]] = {
    "base64": b64encode,
    "urlquote": urlquote,
}


class Renderer:
    """
    Stateless-per-call template renderer.

    static_params is copied at construction and treated as read-only
    afterwards; all workers share one Renderer.
    """

    def __init__(
        self,
        static_params: Optional[Mapping[str, Any]] = None,
        helpers: Optional[Mapping[str, Callable[..., Any]]] = None,
    ):
        self._static_params: dict[str, Any] = dict(static_params or {})
        table = {**DEFAULT_HELPERS, **(helpers or {})}
        self._env = self._build_env(autoescape=False, helpers=table)
        self._html_env = self._build_env(autoescape=True, helpers=table)

    @staticmethod
    def _build_env(autoescape: bool, helpers: Mapping[str, Callable[..., Any]]) -> SandboxedEnvironment:
        env = SandboxedEnvironment(
            autoescape=autoescape,
            keep_trailing_newline=True,
            cache_size=0,
        )
        env.filters.update(helpers)
        env.globals.update(helpers)
        return env

    @property
    def static_params(self) -> dict[str, Any]:
        return dict(self._static_params)

    def effective_params(self, params: Optional[Mapping[str, Any]]) -> dict[str, Any]:
        merged = dict(self._static_params)
        merged.update(params or {})
        return merged

    def render(
        self, body: str, params: Optional[Mapping[str, Any]] = None, html: bool = False,
    ) -> str:
        """
        Render one body string; html=True escapes substituted values.
        Raises RenderError on parse or expansion failure.
        """
        env = self._html_env if html else self._env
        try:
            tpl = env.from_string(body or "")
            return tpl.render(self.effective_params(params))
        except jinja2.TemplateSyntaxError as e:
            logger.warning("template_parse_failed", error=str(e), line=e.lineno)
            raise RenderError(f"Failed to parse template: {e}", body=body) from e
        except Exception as e:
            # runtime failures include helper errors (TypeError etc.), not only jinja2's own
            logger.warning("template_render_failed", error=str(e))
            raise RenderError(f"Failed to render template: {e}", body=body) from e

    def render_template(
        self, template: Template, params: Optional[Mapping[str, Any]] = None,
    ) -> tuple[str, str, str]:
        """Render subject, text and html. Any failure fails the whole call."""
        subject = self.render(template.subject, params)
        text = self.render(template.text_body, params)
        html = self.render(template.html_body, params, html=True)
        return subject, text, html

    def render_job(self, template: Template, job: Job) -> tuple[str, str, str]:
        return self.render_template(template, job.params)
