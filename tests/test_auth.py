import unittest

from portal.application.auth_service import AuthService
from portal.db import get_db
from portal.domain.contracts import AuthLoginInput, AuthRegisterInput
from portal.errors import UpstreamUnavailable, ValidationError
from portal.infrastructure.repositories.auth_repository import AuthRepository
from tests.helpers.temp_db import TempDbSandbox, build_temp_app, dispose_temp_app


CONFIGURED_USERS = (
    "officer@portal.test:officer123:procurement_officer:user-po:Olivia Officer,"
    "finance@portal.test:finance123:finance_officer:user-fo"
)


class AuthHttpTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="auth_http")
        self.app = build_temp_app(self._temp_db, APP_USERS=CONFIGURED_USERS)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        dispose_temp_app(self.app, self._temp_db)

    def test_configured_user_logs_in_and_is_provisioned(self) -> None:
        response = self.client.post("/api/auth/login", json={"email": "Officer@Portal.test", "password": "officer123"})

        self.assertEqual(response.status_code, 200)
        user = response.get_json()["user"]
        self.assertEqual(user["user_id"], "user-po")
        self.assertEqual(user["role"], "procurement_officer")
        self.assertEqual(user["display_name"], "Olivia Officer")

        with self.app.app_context():
            ids = AuthRepository().list_user_ids_by_roles(get_db(), ("procurement_officer",))
        self.assertEqual(ids, ["user-po"])

        # Second login goes through the stored hash.
        self.client.post("/api/auth/logout")
        again = self.client.post("/api/auth/login", json={"email": "officer@portal.test", "password": "officer123"})
        self.assertEqual(again.status_code, 200)
        self.assertEqual(again.get_json()["user"]["user_id"], "user-po")

    def test_wrong_password_is_401(self) -> None:
        response = self.client.post("/api/auth/login", json={"email": "officer@portal.test", "password": "nope"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)

    def test_missing_credentials_is_400(self) -> None:
        response = self.client.post("/api/auth/login", json={"email": "officer@portal.test"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "auth_missing_credentials")

    def test_register_me_logout(self) -> None:
        response = self.client.post(
            "/api/auth/register",
            json={"email": "new@vendor.test", "password": "secret123", "display_name": "New Vendor"},
        )
        self.assertEqual(response.status_code, 201)
        user = response.get_json()["user"]
        self.assertEqual(user["role"], "vendor")

        me = self.client.get("/api/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.get_json()["user"]["user_id"], user["user_id"])

        self.assertEqual(self.client.post("/api/auth/logout").status_code, 200)
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)

        relogin = self.client.post("/api/auth/login", json={"email": "new@vendor.test", "password": "secret123"})
        self.assertEqual(relogin.status_code, 200)

    def test_duplicate_registration_is_rejected(self) -> None:
        body = {"email": "dup@vendor.test", "password": "secret123"}
        self.assertEqual(self.client.post("/api/auth/register", json=body).status_code, 201)
        response = self.client.post("/api/auth/register", json=body)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "email_already_registered")

    def test_short_password_is_rejected(self) -> None:
        response = self.client.post("/api/auth/register", json={"email": "short@vendor.test", "password": "abc"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "password_too_short")


class AuthDisabledTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="auth_disabled")
        self.app = build_temp_app(self._temp_db, AUTH_ENABLED=False)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        dispose_temp_app(self.app, self._temp_db)

    def test_local_principal_is_admin(self) -> None:
        me = self.client.get("/api/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.get_json()["user"]["role"], "admin")
        self.assertEqual(self.client.get("/api/tenders").status_code, 200)


class _FlakyAuthRepository:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    def find_user_by_email(self, db, email):
        self.calls += 1
        if self.calls <= self.failures:
            raise UpstreamUnavailable(details="database is locked")
        return None

    def user_id_exists(self, db, user_id):
        return True


class AuthRetryTest(unittest.TestCase):
    def test_transient_failures_are_retried_with_linear_backoff(self) -> None:
        delays = []
        repository = _FlakyAuthRepository(failures=2)
        service = AuthService(repository, retry_attempts=3, retry_backoff_ms=100, sleep=delays.append)

        user = service.login(
            None,
            AuthLoginInput(email="finance@portal.test", password="finance123"),
            CONFIGURED_USERS,
        )

        self.assertIsNotNone(user)
        self.assertEqual(user.user_id, "user-fo")
        self.assertEqual(user.display_name, "finance")
        self.assertEqual(repository.calls, 3)
        self.assertEqual(delays, [0.1, 0.2])

    def test_exhausted_retries_reraise(self) -> None:
        delays = []
        repository = _FlakyAuthRepository(failures=5)
        service = AuthService(repository, retry_attempts=2, retry_backoff_ms=50, sleep=delays.append)

        with self.assertLogs("portal", level="WARNING"):
            with self.assertRaises(UpstreamUnavailable):
                service.login(None, AuthLoginInput(email="a@b.test", password="x"), "")
        self.assertEqual(repository.calls, 2)
        self.assertEqual(delays, [0.05])

    def test_validation_errors_are_not_retried(self) -> None:
        repository = _FlakyAuthRepository(failures=0)
        service = AuthService(repository, sleep=lambda _delay: self.fail("should not sleep"))
        with self.assertRaises(ValidationError):
            service.register(None, AuthRegisterInput(email="", password="secret123", display_name=None))

    def test_malformed_configured_users_are_skipped(self) -> None:
        users = list(AuthService._parse_users("broken-entry, x@y.test:pw:wizard:user-x, ok@y.test:pw:admin:user-ok"))
        self.assertEqual([user["user_id"] for user in users], ["user-ok"])


if __name__ == "__main__":
    unittest.main()
