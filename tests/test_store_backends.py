"""
Tests for the job and template repositories.

Covers: in-memory, file-backed and SQL (SQLite) backends, and the
repository factory.
"""
import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from conftest import make_template
from database.session import _to_async_url, close_db, init_db
from database.store import SqlJobRepository, SqlTemplateRepository
from database.store_base import DuplicateTemplateError, JobNotFoundError, TemplateNotFoundError
from database.store_factory import create_repositories
from database.store_file import FileJobRepository, FileTemplateRepository
from database.store_memory import InMemoryJobRepository, InMemoryTemplateRepository
from models.schemas import Job, JobType


T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _job(target: str = "a@x.com", minute: int = 0, **kwargs) -> Job:
    return Job(type=JobType.EMAIL, template_id="welcome", locale="en",
               target=target, params={"name": "Ann"},
               created_at=T0 + timedelta(minutes=minute), **kwargs)


@pytest_asyncio.fixture
async def sql_db(tmp_path):
    await init_db(f"sqlite:///{tmp_path / 'notify.db'}")
    yield
    await close_db()


# ══════════════════════════════════════════════════════════════
#  IN-MEMORY
# ══════════════════════════════════════════════════════════════

class TestInMemoryJobRepository:
    @pytest.mark.asyncio
    async def test_create_and_get(self):
        repo = InMemoryJobRepository()
        job = _job()
        await repo.create(job)
        stored = await repo.get(job.id)
        assert stored.target == "a@x.com"
        assert stored is not job

    @pytest.mark.asyncio
    async def test_get_unknown(self):
        assert await InMemoryJobRepository().get("nope") is None

    @pytest.mark.asyncio
    async def test_caller_mutation_not_stored(self):
        repo = InMemoryJobRepository()
        job = _job()
        await repo.create(job)
        job.params["name"] = "Changed"
        assert (await repo.get(job.id)).params == {"name": "Ann"}

    @pytest.mark.asyncio
    async def test_pending_oldest_first(self):
        repo = InMemoryJobRepository()
        first, second, sent = _job("1@x.com", 1), _job("2@x.com", 2), _job("3@x.com", 3)
        sent.mark_sent()
        # created_at decides order, not insertion
        for job in (second, sent, first):
            await repo.create(job)
        pending = await repo.get_pending()
        assert [j.target for j in pending] == ["1@x.com", "2@x.com"]

    @pytest.mark.asyncio
    async def test_update_marks_sent(self):
        repo = InMemoryJobRepository()
        job = _job()
        await repo.create(job)
        job.mark_sent()
        await repo.update(job)
        assert await repo.get_pending() == []
        assert repo.stats() == {"jobs": 1, "pending": 0}

    @pytest.mark.asyncio
    async def test_update_unknown(self):
        with pytest.raises(JobNotFoundError):
            await InMemoryJobRepository().update(_job())


class TestInMemoryTemplateRepository:
    @pytest.mark.asyncio
    async def test_get_missing(self):
        with pytest.raises(TemplateNotFoundError) as exc:
            await InMemoryTemplateRepository().get("welcome", "sv")
        assert exc.value.template_id == "welcome"
        assert exc.value.locale == "sv"

    @pytest.mark.asyncio
    async def test_create_get_update_delete(self):
        repo = InMemoryTemplateRepository()
        tpl = make_template("welcome", "sv")
        await repo.create(tpl)

        stored = await repo.get("welcome", "sv")
        before = stored.updated_at
        stored.subject = "Hej {{ name }}"
        await repo.update(stored)

        updated = await repo.get("welcome", "sv")
        assert updated.subject == "Hej {{ name }}"
        assert updated.updated_at >= before

        await repo.delete(updated)
        with pytest.raises(TemplateNotFoundError):
            await repo.get("welcome", "sv")

    @pytest.mark.asyncio
    async def test_duplicate_create(self):
        repo = InMemoryTemplateRepository()
        await repo.create(make_template("welcome", "sv"))
        with pytest.raises(DuplicateTemplateError):
            await repo.create(make_template("welcome", "sv"))

    @pytest.mark.asyncio
    async def test_locales_are_separate(self):
        repo = InMemoryTemplateRepository()
        await repo.create(make_template("welcome", "sv", subject="Hej"))
        await repo.create(make_template("welcome", "en", subject="Hi"))
        assert (await repo.get("welcome", "sv")).subject == "Hej"
        assert (await repo.get("welcome", "en")).subject == "Hi"

    @pytest.mark.asyncio
    async def test_update_missing(self):
        with pytest.raises(TemplateNotFoundError):
            await InMemoryTemplateRepository().update(make_template())


# ══════════════════════════════════════════════════════════════
#  FILE
# ══════════════════════════════════════════════════════════════

class TestFileRepositories:
    @pytest.mark.asyncio
    async def test_jobs_survive_reload(self, tmp_path):
        repo = FileJobRepository(str(tmp_path))
        pending, sent = _job("1@x.com", 1), _job("2@x.com", 2)
        await repo.create(pending)
        await repo.create(sent)
        sent.mark_sent()
        await repo.update(sent)

        reloaded = FileJobRepository(str(tmp_path))
        assert [j.id for j in await reloaded.get_pending()] == [pending.id]
        assert (await reloaded.get(sent.id)).sent_at is not None
        assert (await reloaded.get(pending.id)).type == JobType.EMAIL

    @pytest.mark.asyncio
    async def test_templates_survive_reload(self, tmp_path):
        repo = FileTemplateRepository(str(tmp_path))
        await repo.create(make_template("welcome", "sv", parameters={"name": "Ann"}))

        raw = json.loads((tmp_path / "templates.json").read_text())
        assert list(raw) == ["sv:welcome"]

        tpl = await FileTemplateRepository(str(tmp_path)).get("welcome", "sv")
        assert tpl.parameters == {"name": "Ann"}

    @pytest.mark.asyncio
    async def test_delete_is_flushed(self, tmp_path):
        repo = FileTemplateRepository(str(tmp_path))
        tpl = make_template()
        await repo.create(tpl)
        await repo.delete(tpl)
        with pytest.raises(TemplateNotFoundError):
            await FileTemplateRepository(str(tmp_path)).get(tpl.template_id, tpl.locale)

    def test_corrupt_file_starts_empty(self, tmp_path):
        (tmp_path / "jobs.json").write_text("{not json")
        repo = FileJobRepository(str(tmp_path))
        assert repo.stats() == {"jobs": 0, "pending": 0}


# ══════════════════════════════════════════════════════════════
#  SQL (SQLite)
# ══════════════════════════════════════════════════════════════

class TestSqlRepositories:
    @pytest.mark.asyncio
    async def test_job_lifecycle(self, sql_db):
        repo = SqlJobRepository()
        first, second = _job("1@x.com", 1, external_id="ext-1"), _job("2@x.com", 2)
        await repo.create(first)
        await repo.create(second)

        stored = await repo.get(first.id)
        assert stored.external_id == "ext-1"
        assert stored.params == {"name": "Ann"}
        assert stored.type == JobType.EMAIL

        assert [j.id for j in await repo.get_pending()] == [first.id, second.id]

        first.mark_sent()
        await repo.update(first)
        assert [j.id for j in await repo.get_pending()] == [second.id]
        assert (await repo.get(first.id)).sent_at is not None

    @pytest.mark.asyncio
    async def test_job_missing(self, sql_db):
        repo = SqlJobRepository()
        assert await repo.get("nope") is None
        with pytest.raises(JobNotFoundError):
            await repo.update(_job())

    @pytest.mark.asyncio
    async def test_template_lifecycle(self, sql_db):
        repo = SqlTemplateRepository()
        with pytest.raises(TemplateNotFoundError):
            await repo.get("welcome", "sv")

        await repo.create(make_template("welcome", "sv", update_parameters=True))
        with pytest.raises(DuplicateTemplateError):
            await repo.create(make_template("welcome", "sv"))

        tpl = await repo.get("welcome", "sv")
        assert tpl.enabled is True
        tpl.parameters = {"name": "Ann"}
        tpl.update_parameters = False
        await repo.update(tpl)

        stored = await repo.get("welcome", "sv")
        assert stored.parameters == {"name": "Ann"}
        assert stored.update_parameters is False

        await repo.delete(stored)
        with pytest.raises(TemplateNotFoundError):
            await repo.get("welcome", "sv")

    @pytest.mark.asyncio
    async def test_update_missing_template(self, sql_db):
        with pytest.raises(TemplateNotFoundError):
            await SqlTemplateRepository().update(make_template())


class TestUrlTranslation:
    def test_async_drivers(self):
        assert _to_async_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
        assert _to_async_url("postgres://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
        assert _to_async_url("mysql://u:p@h/db") == "mysql+aiomysql://u:p@h/db"
        assert _to_async_url("sqlite:///./x.db") == "sqlite+aiosqlite:///./x.db"
        assert _to_async_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


# ══════════════════════════════════════════════════════════════
#  FACTORY
# ══════════════════════════════════════════════════════════════

class TestFactory:
    def test_default_memory(self):
        jobs, templates = create_repositories()
        assert isinstance(jobs, InMemoryJobRepository)
        assert isinstance(templates, InMemoryTemplateRepository)

    def test_file(self, tmp_path):
        jobs, templates = create_repositories({"store_backend": "file", "store_file_dir": str(tmp_path)})
        assert isinstance(jobs, FileJobRepository)
        assert isinstance(templates, FileTemplateRepository)

    def test_sql(self):
        jobs, templates = create_repositories({"store_backend": "sql"})
        assert isinstance(jobs, SqlJobRepository)
        assert isinstance(templates, SqlTemplateRepository)

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_repositories({"store_backend": "redis"})
