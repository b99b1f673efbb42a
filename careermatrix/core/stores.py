from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from careermatrix.core.config import MatrixConfig, _env
from careermatrix.core.errors import (
    DuplicateCapabilityError,
    DuplicateIdError,
    NotFoundReferenceError,
    StoreUnavailableError,
)
from careermatrix.core.models import (
    Capability,
    Criterion,
    EditHistoryEntry,
    JobLevel,
    OverviewContent,
    OverviewType,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_BUSY_TIMEOUT_MS = 5000


def default_sqlite_path() -> str:
    return _env("CAREERMATRIX_SQLITE_PATH", "./careermatrix.db")


def sqlite_busy_timeout_ms() -> int:
    raw = _env("CAREERMATRIX_SQLITE_BUSY_TIMEOUT_MS", str(DEFAULT_SQLITE_BUSY_TIMEOUT_MS))
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_SQLITE_BUSY_TIMEOUT_MS
    return max(0, value)


def open_sqlite_connection(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute(f"PRAGMA busy_timeout = {sqlite_busy_timeout_ms()}")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def ensure_sqlite_schema_meta(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_meta (
          component TEXT PRIMARY KEY,
          version INTEGER NOT NULL,
          updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )


def ensure_sqlite_component_schema(conn: sqlite3.Connection, component: str, target_version: int) -> int:
    ensure_sqlite_schema_meta(conn)
    row = conn.execute("SELECT version FROM schema_meta WHERE component = ?", (component,)).fetchone()
    if row is None:
        conn.execute(
            """
            INSERT INTO schema_meta (component, version, updated_at)
            VALUES (?, ?, CURRENT_TIMESTAMP)
            """,
            (component, target_version),
        )
        return target_version

    current_version = int(row["version"])
    if current_version > target_version:
        raise RuntimeError(
            f"Unsupported newer schema for component '{component}': {current_version} > {target_version}"
        )
    if current_version < target_version:
        conn.execute(
            """
            UPDATE schema_meta
            SET version = ?, updated_at = CURRENT_TIMESTAMP
            WHERE component = ?
            """,
            (target_version, component),
        )
    return target_version


class InMemoryMatrixStore:
    def __init__(self) -> None:
        self._job_levels: Dict[str, JobLevel] = {}
        self._criteria: Dict[str, Criterion] = {}
        self._capabilities: Dict[int, Capability] = {}
        self._edit_history: Dict[int, EditHistoryEntry] = {}
        self._overview: Dict[int, OverviewContent] = {}
        self._sequences = {"capabilities": 0, "edit_history": 0, "overview_content": 0}
        self._lock = threading.Lock()

    def _next_id(self, table: str) -> int:
        self._sequences[table] += 1
        return self._sequences[table]

    def ping(self) -> None:
        return None

    def add_job_level(self, level: JobLevel) -> JobLevel:
        with self._lock:
            if level.id in self._job_levels:
                raise DuplicateIdError("JobLevel", level.id)
            self._job_levels[level.id] = level
            return level

    def add_criterion(self, criterion: Criterion) -> Criterion:
        with self._lock:
            if criterion.id in self._criteria:
                raise DuplicateIdError("Criterion", criterion.id)
            self._criteria[criterion.id] = criterion
            return criterion

    def add_capability(
        self,
        *,
        job_level_id: str,
        criterion_id: str,
        description: str,
        references_capability_id: Optional[int] = None,
        unique_pair: bool = False,
    ) -> Capability:
        with self._lock:
            if job_level_id not in self._job_levels:
                raise NotFoundReferenceError("JobLevel", job_level_id)
            if criterion_id not in self._criteria:
                raise NotFoundReferenceError("Criterion", criterion_id)
            if references_capability_id is not None and references_capability_id not in self._capabilities:
                raise NotFoundReferenceError("Capability", references_capability_id)
            if unique_pair and any(
                c.job_level_id == job_level_id and c.criterion_id == criterion_id
                for c in self._capabilities.values()
            ):
                raise DuplicateCapabilityError(job_level_id, criterion_id)
            capability = Capability(
                id=self._next_id("capabilities"),
                job_level_id=job_level_id,
                criterion_id=criterion_id,
                description=description,
                references_capability_id=references_capability_id,
                created_at=utcnow(),
            )
            self._capabilities[capability.id] = capability
            return capability

    def add_edit_history_entry(self, *, date: str, description: str) -> EditHistoryEntry:
        with self._lock:
            entry = EditHistoryEntry(
                id=self._next_id("edit_history"),
                date=date,
                description=description,
                created_at=utcnow(),
            )
            self._edit_history[entry.id] = entry
            return entry

    def add_overview_content(self, *, type: OverviewType, content: str, order: int) -> OverviewContent:
        with self._lock:
            item = OverviewContent(
                id=self._next_id("overview_content"),
                type=type,
                content=content,
                order=order,
                created_at=utcnow(),
            )
            self._overview[item.id] = item
            return item

    def get_job_level(self, level_id: str) -> Optional[JobLevel]:
        with self._lock:
            return self._job_levels.get(level_id)

    def get_criterion(self, criterion_id: str) -> Optional[Criterion]:
        with self._lock:
            return self._criteria.get(criterion_id)

    def get_capability(self, capability_id: int) -> Optional[Capability]:
        with self._lock:
            return self._capabilities.get(capability_id)

    def list_job_levels(self) -> List[JobLevel]:
        with self._lock:
            return list(self._job_levels.values())

    def list_criteria(self) -> List[Criterion]:
        with self._lock:
            return list(self._criteria.values())

    def list_capabilities(self) -> List[Capability]:
        with self._lock:
            return [self._capabilities[key] for key in sorted(self._capabilities)]

    def list_edit_history(self) -> List[EditHistoryEntry]:
        with self._lock:
            return list(self._edit_history.values())

    def list_overview_content(self) -> List[OverviewContent]:
        with self._lock:
            return list(self._overview.values())

    def counts(self) -> Dict[str, int]:
        with self._lock:
            return {
                "job_levels": len(self._job_levels),
                "criteria": len(self._criteria),
                "capabilities": len(self._capabilities),
                "edit_history": len(self._edit_history),
                "overview_content": len(self._overview),
            }


def _parse_ts(value: Any) -> datetime:
    return datetime.fromisoformat(str(value))


class SQLiteMatrixStore:
    SCHEMA_COMPONENT = "matrix"
    SCHEMA_VERSION = 1

    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db_path = db_path or default_sqlite_path()
        self._write_lock = threading.Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return open_sqlite_connection(self.db_path)

    def _init_db(self) -> None:
        with self._connect() as conn:
            ensure_sqlite_component_schema(conn, self.SCHEMA_COMPONENT, self.SCHEMA_VERSION)
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS job_levels (
                  id TEXT PRIMARY KEY,
                  name TEXT NOT NULL,
                  primary_title TEXT NOT NULL,
                  description_summary TEXT NOT NULL,
                  trajectory_note TEXT,
                  rank INTEGER NOT NULL DEFAULT 0,
                  created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS criteria (
                  id TEXT PRIMARY KEY,
                  category TEXT NOT NULL,
                  sub_category TEXT NOT NULL,
                  created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS capabilities (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  job_level_id TEXT NOT NULL REFERENCES job_levels(id),
                  criterion_id TEXT NOT NULL REFERENCES criteria(id),
                  description TEXT NOT NULL,
                  references_capability_id INTEGER REFERENCES capabilities(id),
                  created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS edit_history (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  date TEXT NOT NULL,
                  description TEXT NOT NULL,
                  created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS overview_content (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  type TEXT NOT NULL,
                  content TEXT NOT NULL,
                  "order" INTEGER NOT NULL,
                  created_at TEXT NOT NULL
                );
                """
            )

    def _fetch(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            with self._connect() as conn:
                return conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"SQLite read failed ({self.db_path}): {exc}") from exc

    def _insert(self, entity: str, entity_id: Any, query: str, params: tuple) -> Optional[int]:
        """Runs one INSERT; returns the new rowid, or None when a conditional insert wrote nothing."""
        with self._write_lock:
            try:
                with self._connect() as conn:
                    cur = conn.execute(query, params)
                    if cur.rowcount == 0:
                        return None
                    return int(cur.lastrowid or 0)
            except sqlite3.IntegrityError as exc:
                message = str(exc)
                if "FOREIGN KEY" in message.upper():
                    raise NotFoundReferenceError(entity, entity_id, f"{entity} references a missing row: {message}") from exc
                raise DuplicateIdError(entity, entity_id) from exc
            except sqlite3.Error as exc:
                raise StoreUnavailableError(f"SQLite write failed ({self.db_path}): {exc}") from exc

    def ping(self) -> None:
        self._fetch("SELECT 1")

    @staticmethod
    def _row_to_job_level(row: sqlite3.Row) -> JobLevel:
        return JobLevel(
            id=row["id"],
            name=row["name"],
            primary_title=row["primary_title"],
            description_summary=row["description_summary"],
            trajectory_note=row["trajectory_note"],
            rank=int(row["rank"]),
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_criterion(row: sqlite3.Row) -> Criterion:
        return Criterion(
            id=row["id"],
            category=row["category"],
            sub_category=row["sub_category"],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_capability(row: sqlite3.Row) -> Capability:
        return Capability(
            id=int(row["id"]),
            job_level_id=row["job_level_id"],
            criterion_id=row["criterion_id"],
            description=row["description"],
            references_capability_id=row["references_capability_id"],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_edit_history(row: sqlite3.Row) -> EditHistoryEntry:
        return EditHistoryEntry(
            id=int(row["id"]),
            date=row["date"],
            description=row["description"],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_overview(row: sqlite3.Row) -> OverviewContent:
        return OverviewContent(
            id=int(row["id"]),
            type=OverviewType(row["type"]),
            content=row["content"],
            order=int(row["order"]),
            created_at=_parse_ts(row["created_at"]),
        )

    def add_job_level(self, level: JobLevel) -> JobLevel:
        self._insert(
            "JobLevel",
            level.id,
            """
            INSERT INTO job_levels (id, name, primary_title, description_summary, trajectory_note, rank, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                level.id,
                level.name,
                level.primary_title,
                level.description_summary,
                level.trajectory_note,
                level.rank,
                level.created_at.isoformat(),
            ),
        )
        return level

    def add_criterion(self, criterion: Criterion) -> Criterion:
        self._insert(
            "Criterion",
            criterion.id,
            "INSERT INTO criteria (id, category, sub_category, created_at) VALUES (?, ?, ?, ?)",
            (criterion.id, criterion.category, criterion.sub_category, criterion.created_at.isoformat()),
        )
        return criterion

    def add_capability(
        self,
        *,
        job_level_id: str,
        criterion_id: str,
        description: str,
        references_capability_id: Optional[int] = None,
        unique_pair: bool = False,
    ) -> Capability:
        created_at = utcnow()
        params = (job_level_id, criterion_id, description, references_capability_id, created_at.isoformat())
        if unique_pair:
            capability_id = self._insert(
                "Capability",
                f"{job_level_id}/{criterion_id}",
                """
                INSERT INTO capabilities (job_level_id, criterion_id, description, references_capability_id, created_at)
                SELECT ?, ?, ?, ?, ?
                WHERE NOT EXISTS (
                  SELECT 1 FROM capabilities WHERE job_level_id = ? AND criterion_id = ?
                )
                """,
                params + (job_level_id, criterion_id),
            )
            if capability_id is None:
                raise DuplicateCapabilityError(job_level_id, criterion_id)
        else:
            capability_id = self._insert(
                "Capability",
                f"{job_level_id}/{criterion_id}",
                """
                INSERT INTO capabilities (job_level_id, criterion_id, description, references_capability_id, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                params,
            )
        return Capability(
            id=capability_id,
            job_level_id=job_level_id,
            criterion_id=criterion_id,
            description=description,
            references_capability_id=references_capability_id,
            created_at=created_at,
        )

    def add_edit_history_entry(self, *, date: str, description: str) -> EditHistoryEntry:
        created_at = utcnow()
        entry_id = self._insert(
            "EditHistoryEntry",
            date,
            "INSERT INTO edit_history (date, description, created_at) VALUES (?, ?, ?)",
            (date, description, created_at.isoformat()),
        )
        return EditHistoryEntry(id=entry_id, date=date, description=description, created_at=created_at)

    def add_overview_content(self, *, type: OverviewType, content: str, order: int) -> OverviewContent:
        created_at = utcnow()
        item_type = OverviewType(type)
        item_id = self._insert(
            "OverviewContent",
            order,
            'INSERT INTO overview_content (type, content, "order", created_at) VALUES (?, ?, ?, ?)',
            (item_type.value, content, order, created_at.isoformat()),
        )
        return OverviewContent(id=item_id, type=item_type, content=content, order=order, created_at=created_at)

    def get_job_level(self, level_id: str) -> Optional[JobLevel]:
        rows = self._fetch("SELECT * FROM job_levels WHERE id = ?", (level_id,))
        return self._row_to_job_level(rows[0]) if rows else None

    def get_criterion(self, criterion_id: str) -> Optional[Criterion]:
        rows = self._fetch("SELECT * FROM criteria WHERE id = ?", (criterion_id,))
        return self._row_to_criterion(rows[0]) if rows else None

    def get_capability(self, capability_id: int) -> Optional[Capability]:
        rows = self._fetch("SELECT * FROM capabilities WHERE id = ?", (capability_id,))
        return self._row_to_capability(rows[0]) if rows else None

    def list_job_levels(self) -> List[JobLevel]:
        return [self._row_to_job_level(row) for row in self._fetch("SELECT * FROM job_levels ORDER BY rowid")]

    def list_criteria(self) -> List[Criterion]:
        return [self._row_to_criterion(row) for row in self._fetch("SELECT * FROM criteria ORDER BY rowid")]

    def list_capabilities(self) -> List[Capability]:
        return [self._row_to_capability(row) for row in self._fetch("SELECT * FROM capabilities ORDER BY id")]

    def list_edit_history(self) -> List[EditHistoryEntry]:
        return [self._row_to_edit_history(row) for row in self._fetch("SELECT * FROM edit_history ORDER BY id")]

    def list_overview_content(self) -> List[OverviewContent]:
        return [self._row_to_overview(row) for row in self._fetch("SELECT * FROM overview_content ORDER BY id")]

    def counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for table in ("job_levels", "criteria", "capabilities", "edit_history", "overview_content"):
            rows = self._fetch(f"SELECT COUNT(*) AS n FROM {table}")
            counts[table] = int(rows[0]["n"])
        return counts


MatrixStore = InMemoryMatrixStore | SQLiteMatrixStore


def create_matrix_store_from_env(matrix_config: Optional[MatrixConfig] = None) -> MatrixStore:
    cfg = matrix_config or MatrixConfig.from_env()
    if cfg.store.mode == "sqlite":
        logger.info("Using SQLite matrix store at %s", cfg.store.sqlite_path)
        return SQLiteMatrixStore(cfg.store.sqlite_path)
    return InMemoryMatrixStore()
