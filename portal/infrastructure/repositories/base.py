from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Iterable

from portal.domain.clock import now_iso


logger = logging.getLogger("portal")


class BaseRepository:
    table = ""
    json_columns: tuple[str, ...] = ()
    bool_columns: tuple[str, ...] = ()
    # Columns a caller may write through insert/update; everything else is rejected.
    writable_columns: frozenset[str] = frozenset()

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    @staticmethod
    def encode_json(value: Any) -> str | None:
        if value is None:
            return None
        return json.dumps(value, ensure_ascii=True, separators=(",", ":"))

    def decode_row(self, row: Any) -> dict | None:
        if not row:
            return None
        record = dict(row)
        for column in self.json_columns:
            raw = record.get(column)
            if isinstance(raw, (bytes, str)):
                try:
                    record[column] = json.loads(raw) if raw else None
                except ValueError:
                    logger.warning(
                        "json_column_unreadable",
                        extra={"table": self.table, "column": column, "row_id": record.get("id")},
                    )
                    record[column] = None
        for column in self.bool_columns:
            if column in record:
                record[column] = bool(record[column])
        return record

    def rows_to_dicts(self, rows: Iterable[Any]) -> list[dict]:
        return [self.decode_row(row) for row in rows]

    def _encode_values(self, values: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(values) - set(self.writable_columns)
        if unknown:
            raise ValueError(f"Unknown columns for {self.table}: {sorted(unknown)}")
        encoded: Dict[str, Any] = {}
        for column, value in values.items():
            if column in self.json_columns and value is not None and not isinstance(value, str):
                value = self.encode_json(value)
            if column in self.bool_columns and value is not None:
                value = bool(value)
            encoded[column] = value
        return encoded

    def get_by_id(self, db, entity_id: str) -> dict | None:
        row = db.execute(
            f"SELECT * FROM {self.table} WHERE id = ? LIMIT 1",
            (entity_id,),
        ).fetchone()
        return self.decode_row(row)

    def insert(self, db, values: Dict[str, Any], *, timestamps: tuple[str, ...] = ("created_at", "updated_at")) -> str:
        record = self._encode_values(values)
        entity_id = str(values.get("id") or self.new_id())
        stamp = now_iso()
        columns = ["id", *[column for column in record if column != "id"], *timestamps]
        params = [entity_id, *[record[column] for column in record if column != "id"], *([stamp] * len(timestamps))]
        placeholders = ", ".join("?" for _ in columns)
        db.execute(
            f"INSERT INTO {self.table} ({', '.join(columns)}) VALUES ({placeholders})",
            params,
        )
        return entity_id

    def update(
        self,
        db,
        entity_id: str,
        values: Dict[str, Any],
        *,
        expected_status: str | None = None,
    ) -> bool:
        """Apply ``values``; with ``expected_status`` the row must still be in that status."""
        record = self._encode_values(values)
        assignments = [f"{column} = ?" for column in record]
        params: list[Any] = list(record.values())
        assignments.append("updated_at = ?")
        params.append(now_iso())
        sql = f"UPDATE {self.table} SET {', '.join(assignments)} WHERE id = ?"
        params.append(entity_id)
        if expected_status is not None:
            sql += " AND status = ?"
            params.append(expected_status)
        cursor = db.execute(sql, params)
        return int(cursor.rowcount or 0) > 0
