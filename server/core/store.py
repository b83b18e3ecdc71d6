"""
Entity store
- One named collection per entity (students, leads, sessions, ...)
- SqlEntityStore: one table per collection, row-level get/update/delete
- JsonFileStore: one JSON array per collection under a data directory
- Declared cascade policy applied on delete
"""
import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic.alias_generators import to_snake
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.attributes import flag_modified
from sqlmodel import Session, SQLModel, select

from core.errors import ConflictError, StorageError, ValidationError
from core.models import COLLECTIONS

logger = logging.getLogger(__name__)

# parent collection -> [(child collection, child field holding the parent id)]
CASCADES: dict[str, list[tuple[str, str]]] = {
    "assignments": [("submissions", "assignment_id")],
    "quizzes": [("attempts", "quiz_id")],
    "students": [
        ("submissions", "student_id"),
        ("attempts", "student_id"),
        ("progress", "student_id"),
        ("grades", "student_id"),
        ("users", "student_id"),
        # student accounts share the student id
        ("sessions", "user_id"),
    ],
}


def model_for(collection: str) -> type[SQLModel]:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValidationError(f"Unknown collection: {collection}") from None


def _sort_key(record: SQLModel):
    created = getattr(record, "created_at", None)
    return (created is None, created)


class EntityStore:
    """CRUD over named collections. Records are SQLModel instances."""

    read_only: bool = False

    def list(self, collection: str, **filters: Any) -> list:
        raise NotImplementedError

    def get(self, collection: str, record_id: str) -> Optional[SQLModel]:
        raise NotImplementedError

    def find_one(self, collection: str, **filters: Any) -> Optional[SQLModel]:
        rows = self.list(collection, **filters)
        return rows[0] if rows else None

    def create(self, collection: str, record: SQLModel) -> SQLModel:
        raise NotImplementedError

    def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> Optional[SQLModel]:
        raise NotImplementedError

    def delete_where(self, collection: str, **filters: Any) -> int:
        raise NotImplementedError

    def _delete_one(self, collection: str, record_id: str) -> bool:
        raise NotImplementedError

    def delete(self, collection: str, record_id: str) -> bool:
        """Delete one record, then its dependents per CASCADES."""
        deleted = self._delete_one(collection, record_id)
        if not deleted:
            return False
        for child, field_name in CASCADES.get(collection, []):
            removed = self.delete_where(child, **{field_name: record_id})
            if removed:
                logger.info(f"🗑️ Cascade: removed {removed} {child} of {collection}/{record_id}")
        return True

    def init(self) -> None:
        """Prepare the backing storage."""

    def close(self) -> None:
        """Release the backing storage."""


class SqlEntityStore(EntityStore):
    def __init__(self, engine: Engine):
        self.engine = engine

    def init(self) -> None:
        from core.db import init_db

        init_db(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def list(self, collection: str, **filters: Any) -> list:
        model = model_for(collection)
        statement = select(model)
        for name, value in filters.items():
            statement = statement.where(getattr(model, name) == value)
        if hasattr(model, "created_at"):
            statement = statement.order_by(model.created_at)
        try:
            with Session(self.engine) as session:
                return list(session.exec(statement).all())
        except SQLAlchemyError as e:
            logger.error(f"❌ list {collection} failed: {e}", exc_info=True)
            raise StorageError() from e

    def get(self, collection: str, record_id: str) -> Optional[SQLModel]:
        model = model_for(collection)
        try:
            with Session(self.engine) as session:
                return session.get(model, record_id)
        except SQLAlchemyError as e:
            logger.error(f"❌ get {collection}/{record_id} failed: {e}", exc_info=True)
            raise StorageError() from e

    def create(self, collection: str, record: SQLModel) -> SQLModel:
        model_for(collection)
        try:
            with Session(self.engine) as session:
                session.add(record)
                session.commit()
                session.refresh(record)
                return record
        except IntegrityError as e:
            raise ConflictError(f"Duplicate {collection} record") from e
        except SQLAlchemyError as e:
            logger.error(f"❌ create {collection} failed: {e}", exc_info=True)
            raise StorageError() from e

    def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> Optional[SQLModel]:
        model = model_for(collection)
        try:
            with Session(self.engine) as session:
                row = session.get(model, record_id)
                if row is None:
                    return None
                for name, value in changes.items():
                    if name == "id" or name not in model.model_fields:
                        continue
                    setattr(row, name, value)
                    # JSON columns are not mutation-tracked
                    flag_modified(row, name)
                session.add(row)
                session.commit()
                session.refresh(row)
                return row
        except SQLAlchemyError as e:
            logger.error(f"❌ update {collection}/{record_id} failed: {e}", exc_info=True)
            raise StorageError() from e

    def _delete_one(self, collection: str, record_id: str) -> bool:
        model = model_for(collection)
        try:
            with Session(self.engine) as session:
                row = session.get(model, record_id)
                if row is None:
                    return False
                session.delete(row)
                session.commit()
                return True
        except SQLAlchemyError as e:
            logger.error(f"❌ delete {collection}/{record_id} failed: {e}", exc_info=True)
            raise StorageError() from e

    def delete_where(self, collection: str, **filters: Any) -> int:
        model = model_for(collection)
        statement = select(model)
        for name, value in filters.items():
            statement = statement.where(getattr(model, name) == value)
        try:
            with Session(self.engine) as session:
                rows = session.exec(statement).all()
                for row in rows:
                    session.delete(row)
                session.commit()
                return len(rows)
        except SQLAlchemyError as e:
            logger.error(f"❌ delete_where {collection} failed: {e}", exc_info=True)
            raise StorageError() from e


class JsonFileStore(EntityStore):
    """
    One `<collection>.json` array per collection.
    Writes are serialized per collection and land via temp file + os.replace,
    so a crash never leaves a half-written file.
    """

    # keys written by older deployments
    RENAMED_FIELDS = {"users": {"password": "password_hash"}}

    def __init__(self, data_dir: Path, read_only: bool = False):
        self.data_dir = Path(data_dir)
        self.read_only = read_only
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def init(self) -> None:
        if self.read_only:
            return
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"❌ Cannot create data directory {self.data_dir}: {e}")
            raise StorageError() from e
        logger.info(f"🗄️ JSON store at {self.data_dir}")

    def _lock(self, collection: str) -> threading.RLock:
        with self._locks_guard:
            if collection not in self._locks:
                self._locks[collection] = threading.RLock()
            return self._locks[collection]

    def _path(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.json"

    def _normalize(self, collection: str, row: dict) -> dict:
        renamed = self.RENAMED_FIELDS.get(collection, {})
        result = {}
        for key, value in row.items():
            key = renamed.get(key, key)
            result[to_snake(key)] = value
        return result

    def _read_rows(self, collection: str) -> list[dict]:
        path = self._path(collection)
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"❌ Cannot read {path}: {e}", exc_info=True)
            raise StorageError() from e
        if not isinstance(data, list):
            logger.error(f"❌ {path} does not hold a JSON array")
            raise StorageError()
        return [self._normalize(collection, row) for row in data if isinstance(row, dict)]

    def _write_rows(self, collection: str, rows: list[dict]) -> None:
        if self.read_only:
            raise StorageError(f"{self.data_dir} is read-only")
        path = self._path(collection)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{collection}.", suffix=".json", dir=path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(rows, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, path)
        except OSError as e:
            logger.error(f"❌ Cannot write {path}: {e}", exc_info=True)
            raise StorageError() from e

    @staticmethod
    def _dump(record: SQLModel) -> dict:
        return record.model_dump(mode="json")

    @staticmethod
    def _matches(record: SQLModel, filters: dict[str, Any]) -> bool:
        return all(getattr(record, name, None) == value for name, value in filters.items())

    @staticmethod
    def _from_row(model: type[SQLModel], row: dict) -> SQLModel:
        record = model.model_validate(row)
        # older files carry offset timestamps; everything else is naive UTC
        for name in model.model_fields:
            value = getattr(record, name, None)
            if isinstance(value, datetime) and value.tzinfo is not None:
                setattr(record, name, value.astimezone(timezone.utc).replace(tzinfo=None))
        return record

    def _load(self, collection: str) -> list:
        model = model_for(collection)
        return [self._from_row(model, row) for row in self._read_rows(collection)]

    def list(self, collection: str, **filters: Any) -> list:
        with self._lock(collection):
            records = [r for r in self._load(collection) if self._matches(r, filters)]
        return sorted(records, key=_sort_key)

    def get(self, collection: str, record_id: str) -> Optional[SQLModel]:
        with self._lock(collection):
            for record in self._load(collection):
                if record.id == record_id:
                    return record
        return None

    def create(self, collection: str, record: SQLModel) -> SQLModel:
        model = model_for(collection)
        # run defaults and validation the same way a reload would
        record = self._from_row(model, self._dump(record))
        with self._lock(collection):
            rows = self._read_rows(collection)
            if any(row.get("id") == record.id for row in rows):
                raise ConflictError(f"Duplicate {collection} record")
            rows.append(self._dump(record))
            self._write_rows(collection, rows)
        return record

    def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> Optional[SQLModel]:
        model = model_for(collection)
        with self._lock(collection):
            rows = self._read_rows(collection)
            for index, row in enumerate(rows):
                if row.get("id") != record_id:
                    continue
                merged = dict(row)
                for name, value in changes.items():
                    if name == "id" or name not in model.model_fields:
                        continue
                    merged[name] = value
                # dump the incoming values (enums, datetimes) into JSON form
                record = self._from_row(model, merged)
                rows[index] = self._dump(record)
                self._write_rows(collection, rows)
                return record
        return None

    def _delete_one(self, collection: str, record_id: str) -> bool:
        with self._lock(collection):
            rows = self._read_rows(collection)
            remaining = [row for row in rows if row.get("id") != record_id]
            if len(remaining) == len(rows):
                return False
            self._write_rows(collection, remaining)
            return True

    def delete_where(self, collection: str, **filters: Any) -> int:
        model = model_for(collection)
        with self._lock(collection):
            rows = self._read_rows(collection)
            keep = [row for row in rows if not self._matches(self._from_row(model, row), filters)]
            removed = len(rows) - len(keep)
            if removed:
                self._write_rows(collection, keep)
            return removed


def build_store(settings) -> EntityStore:
    if settings.storage_backend == "file":
        return JsonFileStore(settings.data_dir)
    from core.db import build_engine

    return SqlEntityStore(build_engine(settings))


def build_fallback_store(settings) -> Optional[EntityStore]:
    """Read-only JSON store consulted at login when migrating from file storage."""
    legacy_dir = settings.legacy_data_dir
    if settings.storage_backend != "sql" or legacy_dir is None:
        return None
    return JsonFileStore(legacy_dir, read_only=True)
