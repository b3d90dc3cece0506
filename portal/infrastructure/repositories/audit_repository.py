from __future__ import annotations

from typing import Any

from portal.infrastructure.repositories.base import BaseRepository


class ActionLogRepository(BaseRepository):
    table = "action_logs"
    json_columns = ("details",)
    writable_columns = frozenset({"user_id", "action", "entity_type", "entity_id", "details"})

    def append(self, db, *, user_id: str | None, action: str, entity_type: str, entity_id: str, details: dict) -> str:
        return self.insert(
            db,
            {
                "user_id": user_id or None,
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "details": details or {},
            },
            timestamps=("created_at",),
        )

    def list_filtered(
        self,
        db,
        *,
        entity_type: str | None = None,
        entity_id: str | None = None,
        user_id: str | None = None,
        limit: int = 100,
    ) -> list[dict]:
        clauses: list[str] = []
        params: list[Any] = []
        if entity_type:
            clauses.append("entity_type = ?")
            params.append(entity_type)
        if entity_id:
            clauses.append("entity_id = ?")
            params.append(entity_id)
        if user_id:
            clauses.append("user_id = ?")
            params.append(user_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(
            f"""
            SELECT *
            FROM action_logs
            {where}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)


class NotificationRepository(BaseRepository):
    table = "notifications"
    bool_columns = ("is_read",)
    writable_columns = frozenset({"user_id", "type", "message", "related_id", "is_read"})

    def append(self, db, *, user_id: str, type: str, message: str, related_id: str | None = None) -> str:
        return self.insert(
            db,
            {"user_id": user_id, "type": type, "message": message, "related_id": related_id, "is_read": False},
            timestamps=("created_at",),
        )

    def list_for_user(
        self,
        db,
        user_id: str,
        *,
        is_read: bool | None = False,
        type: str | None = None,
        limit: int = 10,
    ) -> list[dict]:
        clauses = ["user_id = ?"]
        params: list[Any] = [user_id]
        if is_read is not None:
            clauses.append("is_read = ?")
            params.append(bool(is_read))
        if type:
            clauses.append("type = ?")
            params.append(type)
        rows = db.execute(
            f"""
            SELECT *
            FROM notifications
            WHERE {' AND '.join(clauses)}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def unread_count(self, db, user_id: str, *, type: str | None = None) -> int:
        sql = "SELECT COUNT(*) AS total FROM notifications WHERE user_id = ? AND is_read = ?"
        params: list[Any] = [user_id, False]
        if type:
            sql += " AND type = ?"
            params.append(type)
        row = db.execute(sql, params).fetchone()
        return int(row["total"] or 0) if row else 0

    def mark_read(self, db, notification_id: str, user_id: str) -> bool:
        cursor = db.execute(
            "UPDATE notifications SET is_read = ? WHERE id = ? AND user_id = ?",
            (True, notification_id, user_id),
        )
        return int(cursor.rowcount or 0) > 0

    def mark_all_read(self, db, user_id: str, *, type: str | None = None) -> int:
        sql = "UPDATE notifications SET is_read = ? WHERE user_id = ? AND is_read = ?"
        params: list[Any] = [True, user_id, False]
        if type:
            sql += " AND type = ?"
            params.append(type)
        cursor = db.execute(sql, params)
        return int(cursor.rowcount or 0)
