"""
File repositories — JSON file-backed storage that survives restarts.

Data layout:
  {data_dir}/
    jobs.json          {job_id: job}
    templates.json     {"locale:template_id": template}

Features:
  - Survives process restarts (unlike the in-memory repositories), so
    pending jobs are picked up again on the next start
  - No external dependencies (no database server)
  - Flushes the changed collection on every write (tmp file + rename)
  - Single-process only (no concurrent write safety)

Best for: small deployments, demos, edge devices, air-gapped environments.
"""
from __future__ import annotations

import json
import structlog
from pathlib import Path
from typing import Any

from database.store_memory import InMemoryJobRepository, InMemoryTemplateRepository
from models.schemas import Job, Template

logger = structlog.get_logger()


def _load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("file_store_load_error", path=str(path), error=str(e))
        return {}
    if not isinstance(data, dict):
        logger.warning("file_store_load_error", path=str(path), error="not an object")
        return {}
    return data


def _write_json(path: Path, data: dict[str, Any]) -> None:
    tmp_path = path.with_suffix(".tmp")
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=2, default=str)
    tmp_path.rename(path)  # atomic on POSIX


class FileJobRepository(InMemoryJobRepository):
    """
    Extends InMemoryJobRepository with JSON file persistence.

    On init: loads all jobs from disk into memory.
    On every write: flushes jobs.json.
    """

    def __init__(self, data_dir: str = "./data"):
        super().__init__()
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._path = self._data_dir / "jobs.json"
        for job_id, raw in _load_json(self._path).items():
            try:
                self._jobs[job_id] = Job.model_validate(raw)
            except ValueError as e:
                logger.warning("file_store_bad_job", job_id=job_id, error=str(e))
        logger.info("file_job_repository_initialized",
                    data_dir=str(self._data_dir), jobs=len(self._jobs))

    def flush(self) -> None:
        _write_json(self._path, {
            job_id: job.model_dump(mode="json") for job_id, job in self._jobs.items()
        })

    async def create(self, job: Job) -> Job:
        result = await super().create(job)
        self.flush()
        return result

    async def update(self, job: Job) -> Job:
        result = await super().update(job)
        self.flush()
        return result


class FileTemplateRepository(InMemoryTemplateRepository):
    """Extends InMemoryTemplateRepository with JSON file persistence."""

    def __init__(self, data_dir: str = "./data"):
        super().__init__()
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._path = self._data_dir / "templates.json"
        for key, raw in _load_json(self._path).items():
            try:
                tpl = Template.model_validate(raw)
            except ValueError as e:
                logger.warning("file_store_bad_template", key=key, error=str(e))
                continue
            self._templates[tpl.key] = tpl
        logger.info("file_template_repository_initialized",
                    data_dir=str(self._data_dir), templates=len(self._templates))

    def flush(self) -> None:
        _write_json(self._path, {
            f"{locale}:{template_id}": tpl.model_dump(mode="json")
            for (template_id, locale), tpl in self._templates.items()
        })

    async def create(self, template: Template) -> Template:
        result = await super().create(template)
        self.flush()
        return result

    async def update(self, template: Template) -> Template:
        result = await super().update(template)
        self.flush()
        return result

    async def delete(self, template: Template) -> None:
        await super().delete(template)
        self.flush()
