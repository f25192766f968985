from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from db_bootstrap.errors import ResourceUnreadable
from db_bootstrap.logging import logger
from db_bootstrap.store import Store


class FileResourceReader:
    """Reads seed assets from the local filesystem."""

    def exists(self, path: Path) -> bool:
        # Only a missing entry means absent; any other stat failure is unreadable.
        try:
            path.stat()
        except (FileNotFoundError, NotADirectoryError):
            return False
        except OSError as e:
            raise ResourceUnreadable(f"{path}: {e.strerror or e}") from e
        return True

    def read(self, path: Path) -> bytes:
        try:
            if not path.is_file():
                raise ResourceUnreadable(f"{path} is not a regular file")
            return path.read_bytes()
        except OSError as e:
            raise ResourceUnreadable(f"{path}: {e.strerror or e}") from e


@dataclass(frozen=True)
class SeedTarget:
    table: str
    # Equality predicate over existing rows, e.g. {"name": "default_user"}.
    selector: dict[str, Any]
    resource: Path
    column: str


@dataclass(frozen=True)
class SeedResult:
    rows_affected: int
    skipped: bool = False
    note: str | None = None


class DataSeeder:
    """
    Writes an external binary asset into a column of the matching rows.

    The asset is re-read and re-written on every run, so replacing the file and
    re-running the bootstrap is how the stored copy gets refreshed. A missing asset
    is a benign skip: minimal deployments ship without optional seed files.
    """

    def __init__(self, store: Store, reader: FileResourceReader | None = None):
        self._store = store
        self._reader = reader or FileResourceReader()

    def seed(self, target: SeedTarget) -> SeedResult:
        path = Path(target.resource)
        if not self._reader.exists(path):
            logger.info("seed_resource_missing", table=target.table, column=target.column, path=str(path))
            return SeedResult(rows_affected=0, skipped=True, note=f"resource not found at {path}")

        data = self._reader.read(path)
        rows = self._store.update_rows(target.table, target.selector, {target.column: data})
        if rows == 0:
            logger.warning("seed_no_rows_matched", table=target.table, selector=target.selector)
        logger.info(
            "seed_applied",
            table=target.table,
            column=target.column,
            path=str(path),
            size_bytes=len(data),
            rows_affected=rows,
        )
        return SeedResult(rows_affected=rows)


@dataclass(frozen=True)
class RowSeed:
    table: str
    key: dict[str, Any]
    values: dict[str, Any] = field(default_factory=dict)


class RowEnsurer:
    """Insert-if-absent for fixed rows, matched on `key`. Existing rows are not touched."""

    def __init__(self, store: Store):
        self._store = store

    def ensure(self, seed: RowSeed) -> int:
        if self._store.row_exists(seed.table, seed.key):
            logger.info("row_present", table=seed.table, key=seed.key)
            return 0
        self._store.insert_row(seed.table, {**seed.values, **seed.key})
        logger.info("row_inserted", table=seed.table, key=seed.key)
        return 1
