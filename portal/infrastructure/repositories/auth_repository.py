from __future__ import annotations

from werkzeug.security import generate_password_hash

from portal.infrastructure.repositories.base import BaseRepository


class AuthRepository(BaseRepository):
    table = "auth_users"
    writable_columns = frozenset({"id", "email", "password_hash", "display_name", "role"})

    def find_user_by_email(self, db, email: str) -> dict | None:
        row = db.execute(
            """
            SELECT id, email, password_hash, display_name, role
            FROM auth_users
            WHERE email = ?
            """,
            (email,),
        ).fetchone()
        if not row:
            return None
        return dict(row)

    def email_exists(self, db, email: str) -> bool:
        row = db.execute(
            "SELECT 1 FROM auth_users WHERE email = ?",
            (email,),
        ).fetchone()
        return bool(row)

    def user_id_exists(self, db, user_id: str) -> bool:
        row = db.execute("SELECT 1 FROM auth_users WHERE id = ?", (user_id,)).fetchone()
        return bool(row)

    def create_user(
        self,
        db,
        *,
        email: str,
        password: str,
        display_name: str | None,
        role: str,
        user_id: str | None = None,
    ) -> str:
        return self.insert(
            db,
            {
                "id": user_id or self.new_id(),
                "email": email,
                "password_hash": generate_password_hash(password),
                "display_name": display_name,
                "role": role,
            },
        )

    def list_user_ids_by_roles(self, db, roles: tuple[str, ...]) -> list[str]:
        if not roles:
            return []
        placeholders = ", ".join("?" for _ in roles)
        rows = db.execute(
            f"SELECT id FROM auth_users WHERE role IN ({placeholders}) ORDER BY id",
            roles,
        ).fetchall()
        return [str(row["id"]) for row in rows]
