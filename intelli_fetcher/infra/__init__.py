"""Infra layer utilities (SQLite storage and the external save built on it)."""

from .external_save import SQLiteExternalSave, stored_task_keys
from .storage import SQLiteManager

__all__ = ["SQLiteExternalSave", "SQLiteManager", "stored_task_keys"]
