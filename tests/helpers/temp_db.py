from __future__ import annotations

import shutil
import tempfile
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from portal import create_app
from portal.config import Config
from portal.core import reset_event_bus_for_tests
from portal.db import close_db
from portal.observability import reset_metrics_for_tests
from portal.security import reset_rate_limiter_for_tests


_REPO_ROOT = Path(__file__).resolve().parents[2]
_TEMP_ROOT = Path(tempfile.gettempdir()).resolve()


def assert_safe_temp_db_path(db_path: str) -> None:
    resolved = Path(db_path).resolve()
    if not resolved.is_relative_to(_TEMP_ROOT):
        raise ValueError(f"Temporary DB must live under TEMP: {resolved}")
    if resolved.is_relative_to(_REPO_ROOT):
        raise ValueError(f"Temporary DB cannot live inside the repository: {resolved}")


def remove_tree_with_retry(path: str, attempts: int = 5, base_delay: float = 0.05) -> None:
    root = Path(path)
    for attempt in range(attempts):
        if not root.exists():
            return
        try:
            shutil.rmtree(root)
            return
        except OSError:
            time.sleep(base_delay * (2**attempt))


@dataclass
class TempDbSandbox:
    prefix: str = "portal_tests"
    db_name: str = "procurement_portal_test.db"

    def __post_init__(self) -> None:
        folder = _TEMP_ROOT / f"{self.prefix}_{uuid.uuid4().hex}"
        folder.mkdir(parents=True, exist_ok=False)
        self.temp_dir = str(folder)
        self.db_path = str(folder / self.db_name)
        assert_safe_temp_db_path(self.db_path)

    def make_config(self, base_config=Config, **overrides):
        attrs = {
            "DATABASE_DIR": self.temp_dir,
            "DB_PATH": self.db_path,
            "TESTING": True,
            "AUTH_ENABLED": True,
            "RATE_LIMIT_ENABLED": False,
            "LOG_JSON": False,
            "SECRET_KEY": "test-secret",
            "APP_USERS": "",
        }
        attrs.update(overrides)
        return type("TempConfig", (base_config,), attrs)

    def cleanup(self) -> None:
        remove_tree_with_retry(self.temp_dir)


def build_temp_app(temp_db: TempDbSandbox, **overrides):
    reset_event_bus_for_tests()
    reset_rate_limiter_for_tests()
    reset_metrics_for_tests()
    return create_app(temp_db.make_config(**overrides))


def dispose_temp_app(app, temp_db: TempDbSandbox) -> None:
    with app.app_context():
        close_db()
    reset_event_bus_for_tests()
    temp_db.cleanup()
