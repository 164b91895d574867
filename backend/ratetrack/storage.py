from __future__ import annotations

import copy
import json
from typing import Any, Dict, List, Optional, Protocol, Tuple

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .database import db_session
from .domain import Project, TaxSettings
from .errors import PersistenceError
from .ledger import recompute_totals
from .models import AppSetting

logger = structlog.get_logger(__name__)

PROJECTS_KEY = "time-tracker-projects"
TAX_SETTINGS_KEY = "time-tracker-tax-settings"

REJECTED_SUFFIX = ".rejected"
CORRUPT_SUFFIX = ".corrupt"


class KeyValueStore(Protocol):
    def load(self, key: str, default: Any = None) -> Any: ...

    def save(self, key: str, value: Any) -> None: ...


class MemoryKeyValueStore:
    """Process-local store; values are deep-copied in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def load(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def save(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class SqlKeyValueStore:
    """JSON values stored as text rows in ``app_settings``."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def load(self, key: str, default: Any = None) -> Any:
        try:
            with db_session(self._session_factory) as session:
                record = session.query(AppSetting).filter(AppSetting.key == key).one_or_none()
                raw = record.value if record else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not read '{key}' from storage") from exc
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("state_load_fallback", key=key, reason="invalid_json")
            # Keep the undecodable text; the next save of ``key`` would replace it.
            self._write(f"{key}{CORRUPT_SUFFIX}", raw)
            return default

    def save(self, key: str, value: Any) -> None:
        self._write(key, json.dumps(value))

    def _write(self, key: str, payload: str) -> None:
        try:
            with db_session(self._session_factory) as session:
                record = session.query(AppSetting).filter(AppSetting.key == key).one_or_none()
                if record:
                    record.value = payload
                else:
                    session.add(AppSetting(key=key, value=payload))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not write '{key}' to storage") from exc


def _set_aside(store: KeyValueStore, key: str, rejected: List[Any]) -> None:
    """Copy unreadable entries under ``<key>.rejected`` so a later save cannot destroy them."""
    backup_key = f"{key}{REJECTED_SUFFIX}"
    kept = store.load(backup_key, [])
    if not isinstance(kept, list):
        kept = [kept]
    kept.extend(item for item in rejected if item not in kept)
    store.save(backup_key, kept)
    logger.warning("state_load_set_aside", key=key, backup_key=backup_key, count=len(rejected))


def load_projects(store: KeyValueStore) -> Tuple[Project, ...]:
    """Load the project collection, reviving timestamps into aware datetimes.

    Each project is validated on its own. Invalid entries are skipped and set
    aside; the valid ones are still returned.
    """
    raw = store.load(PROJECTS_KEY, [])
    if raw is None:
        return ()
    if not isinstance(raw, list):
        logger.warning("state_load_fallback", key=PROJECTS_KEY, reason="not_a_list")
        _set_aside(store, PROJECTS_KEY, [raw])
        return ()

    projects: List[Project] = []
    rejected: List[Any] = []
    for item in raw:
        try:
            projects.append(Project.model_validate(item))
        except PydanticValidationError as exc:
            project_id = item.get("id") if isinstance(item, dict) else None
            logger.warning("state_load_fallback", key=PROJECTS_KEY, project_id=project_id, errors=exc.error_count())
            rejected.append(item)
    if rejected:
        _set_aside(store, PROJECTS_KEY, rejected)
    # Stored totals are derived data; rebuild them from the blocks.
    return tuple(recompute_totals(project) for project in projects)


def save_projects(store: KeyValueStore, projects: Tuple[Project, ...]) -> None:
    store.save(PROJECTS_KEY, [project.model_dump(mode="json") for project in projects])


def load_tax_settings(store: KeyValueStore, default: TaxSettings) -> TaxSettings:
    raw = store.load(TAX_SETTINGS_KEY, None)
    if raw is None:
        return default
    try:
        return TaxSettings.model_validate(raw)
    except PydanticValidationError as exc:
        logger.warning("state_load_fallback", key=TAX_SETTINGS_KEY, errors=exc.error_count())
        _set_aside(store, TAX_SETTINGS_KEY, [raw])
        return default


def save_tax_settings(store: KeyValueStore, tax_settings: TaxSettings) -> None:
    store.save(TAX_SETTINGS_KEY, tax_settings.model_dump(mode="json"))
