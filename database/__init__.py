"""
Database layer — Multi-backend persistence for jobs and templates.

Backends:
  - SQL (PostgreSQL / MySQL / SQLite via SQLAlchemy async)
  - In-memory (dict-based, for development/testing)
  - File (JSON files on disk, for small deployments)

Quick start:
  from database import create_repositories
  jobs, templates = create_repositories({"store_backend": "memory"})
  pending = await jobs.get_pending()
"""
from database.models import Base, JobRow, TemplateRow
from database.session import get_engine, get_session, init_db, close_db
from database.store_base import (
    BaseJobRepository, BaseTemplateRepository,
    TemplateNotFoundError, DuplicateTemplateError, JobNotFoundError,
)
from database.store import SqlJobRepository, SqlTemplateRepository
from database.store_memory import InMemoryJobRepository, InMemoryTemplateRepository
from database.store_file import FileJobRepository, FileTemplateRepository
from database.store_factory import create_repositories

__all__ = [
    # ORM models
    "Base", "JobRow", "TemplateRow",
    # Session management
    "get_engine", "get_session", "init_db", "close_db",
    # Repository interfaces and errors
    "BaseJobRepository", "BaseTemplateRepository",
    "TemplateNotFoundError", "DuplicateTemplateError", "JobNotFoundError",
    # Backends
    "SqlJobRepository", "SqlTemplateRepository",
    "InMemoryJobRepository", "InMemoryTemplateRepository",
    "FileJobRepository", "FileTemplateRepository",
    # Factory
    "create_repositories",
]
