"""
Tests for settings loading, logging setup and bootstrap wiring.
"""
import textwrap

import pytest
import structlog

from channels.log_adapter import LogTransport
from config.logging import configure_logging
from config.settings import Settings, load_settings
from core.bootstrap import create_dispatcher
from database.store_file import FileJobRepository


def _write(tmp_path, body: str) -> str:
    path = tmp_path / "settings.yaml"
    path.write_text(textwrap.dedent(body))
    return str(path)


class TestLoadSettings:
    def test_defaults_when_file_missing(self, tmp_path):
        settings = load_settings(str(tmp_path / "missing.yaml"))
        assert settings.dispatch.fallback_locale == "en"
        assert settings.queue.capacity == 1000
        assert settings.queue.worker_count == 5
        assert settings.database.store_backend == "memory"
        assert settings.email.provider == ""

    def test_yaml_values(self, tmp_path):
        path = _write(tmp_path, """
            debug: true
            log_format: console
            dispatch:
              fallback_locale: sv
              static_params:
                company_name: Example AB
            queue:
              capacity: 10
              worker_count: "2"
              enqueue_timeout: 0.5
            database:
              store_backend: file
              store_file_dir: /var/lib/notify
            email:
              provider: mailgun
              credentials:
                domain: mg.example.com
        """)
        settings = load_settings(path)
        assert settings.debug is True
        assert settings.dispatch.fallback_locale == "sv"
        assert settings.dispatch.static_params == {"company_name": "Example AB"}
        assert settings.queue.capacity == 10
        assert settings.queue.worker_count == 2
        assert settings.queue.enqueue_timeout == 0.5
        assert settings.queue.max_pending_enqueues == 1000
        assert settings.database.store_backend == "file"
        assert settings.database.url == "sqlite:///./notify.db"
        assert settings.email.credentials == {"domain": "mg.example.com"}
        assert settings.sms.provider == ""

    def test_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MAILGUN_API_KEY", "key-123")
        monkeypatch.delenv("UNSET_VAR", raising=False)
        path = _write(tmp_path, """
            email:
              provider: mailgun
              credentials:
                api_key: ${MAILGUN_API_KEY}
                domain: ${UNSET_VAR}
        """)
        settings = load_settings(path)
        assert settings.email.credentials["api_key"] == "key-123"
        assert settings.email.credentials["domain"] == "${UNSET_VAR}"

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = _write(tmp_path, """
            app_name: from-env
        """)
        monkeypatch.setenv("NOTIFY_CONFIG", path)
        assert load_settings().app_name == "from-env"


class TestLogging:
    @pytest.mark.parametrize("debug,fmt", [(True, "json"), (False, "console"), (False, "json")])
    def test_configure(self, debug, fmt):
        configure_logging(Settings(debug=debug, log_format=fmt, log_level="warning"))
        try:
            assert structlog.is_configured()
        finally:
            structlog.reset_defaults()


class TestBootstrap:
    @pytest.mark.asyncio
    async def test_create_dispatcher(self, tmp_path):
        settings = Settings()
        settings.database.store_backend = "file"
        settings.database.store_file_dir = str(tmp_path)
        settings.email.provider = "log"
        settings.dispatch.fallback_locale = "sv"
        settings.dispatch.static_params = {"company": "Example AB"}
        settings.queue.worker_count = 2

        dispatcher = await create_dispatcher(settings)
        assert isinstance(dispatcher.job_repo, FileJobRepository)
        assert isinstance(dispatcher.email_transport, LogTransport)
        assert dispatcher.sms_transport is None
        assert dispatcher.fallback_locale == "sv"
        assert dispatcher.pool.worker_count == 2
        assert dispatcher.renderer.static_params == {"company": "Example AB"}

    @pytest.mark.asyncio
    async def test_log_transport_end_to_end(self, tmp_path):
        settings = Settings()
        settings.email.provider = "log"

        dispatcher = await create_dispatcher(settings)
        await dispatcher.start()
        await dispatcher.send_email("welcome", "en", "ann@example.com", params={"name": "Ann"})
        await dispatcher.pool.join()
        await dispatcher.close()

        delivery = dispatcher.email_transport.deliveries[0]
        assert delivery.target == "ann@example.com"
        assert "template missing" in delivery.subject
