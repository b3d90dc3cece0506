import unittest
from datetime import datetime, timedelta, timezone

from portal.domain.contracts import Principal
from portal.errors import AuthorizationError, ConflictError
from portal.policies import (
    ROLE_PERMISSIONS,
    BidSubmission,
    authorize,
    can_view_all,
    has_permission,
    normalize_role,
    require,
    require_roles,
)


def _vendor(**overrides) -> dict:
    vendor = {"id": "v-1", "user_id": "user-v1", "status": "Active", "business_type": "Large Enterprise"}
    vendor.update(overrides)
    return vendor


def _tender(**overrides) -> dict:
    deadline = datetime.now(timezone.utc) + timedelta(days=3)
    tender = {
        "id": "t-1",
        "status": "published",
        "is_reserved_for_mse": False,
        "submission_deadline": deadline.isoformat().replace("+00:00", "Z"),
    }
    tender.update(overrides)
    return tender


VENDOR = Principal(user_id="user-v1", role="vendor")
OTHER_VENDOR = Principal(user_id="user-v2", role="vendor")
OFFICER = Principal(user_id="user-po", role="procurement_officer")
FINANCE = Principal(user_id="user-fo", role="finance_officer")
ADMIN = Principal(user_id="user-admin", role="admin")


class RolePermissionTest(unittest.TestCase):
    def test_admin_is_superset_of_every_role(self) -> None:
        for role, actions in ROLE_PERMISSIONS.items():
            self.assertTrue(actions <= ROLE_PERMISSIONS["admin"], role)

    def test_finance_cannot_approve_vendors_or_award(self) -> None:
        self.assertFalse(has_permission("finance_officer", "vendor.approve"))
        self.assertFalse(has_permission("finance_officer", "tender.award"))
        self.assertTrue(has_permission("finance_officer", "payment.complete"))

    def test_vendor_cannot_create_tenders(self) -> None:
        decision = authorize(VENDOR, "tender.create")
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.reason, "role_mismatch")

    def test_unknown_role_has_no_permissions(self) -> None:
        self.assertFalse(has_permission("auditor", "report.view"))
        self.assertEqual(normalize_role("  ADMIN "), "admin")
        self.assertEqual(normalize_role("auditor"), "vendor")

    def test_missing_principal_is_auth_required(self) -> None:
        with self.assertRaises(AuthorizationError) as ctx:
            require(None, "tender.create")
        self.assertEqual(ctx.exception.http_status, 401)
        self.assertEqual(ctx.exception.reason, "auth_required")

    def test_can_view_all(self) -> None:
        self.assertTrue(can_view_all(OFFICER, "payment"))
        self.assertTrue(can_view_all(FINANCE, "vendor"))
        self.assertFalse(can_view_all(VENDOR, "tender"))
        self.assertFalse(can_view_all(None, "tender"))

    def test_require_roles(self) -> None:
        self.assertIs(require_roles(VENDOR), VENDOR)
        self.assertIs(require_roles(ADMIN, "finance_officer"), ADMIN)
        with self.assertRaises(AuthorizationError):
            require_roles(VENDOR, "finance_officer")


class OwnershipRuleTest(unittest.TestCase):
    def test_vendor_updates_only_own_profile(self) -> None:
        self.assertTrue(authorize(VENDOR, "vendor.update_profile", _vendor()).allowed)
        decision = authorize(OTHER_VENDOR, "vendor.update_profile", _vendor())
        self.assertEqual(decision.reason, "ownership_mismatch")

    def test_admin_bypasses_ownership(self) -> None:
        self.assertTrue(authorize(ADMIN, "vendor.update_profile", _vendor()).allowed)

    def test_qr_payment_by_officer_or_owner(self) -> None:
        self.assertTrue(authorize(FINANCE, "payment.pay_via_qr", _vendor()).allowed)
        self.assertTrue(authorize(VENDOR, "payment.pay_via_qr", _vendor()).allowed)
        self.assertEqual(authorize(OTHER_VENDOR, "payment.pay_via_qr", _vendor()).reason, "ownership_mismatch")


class BidSubmissionGateTest(unittest.TestCase):
    def _decide(self, principal=VENDOR, *, vendor=None, tender=None, existing=None, now=None):
        submission = BidSubmission(vendor=vendor or _vendor(), tender=tender or _tender(), existing_bid=existing)
        return authorize(principal, "bid.submit", submission, now=now)

    def test_open_tender_active_vendor_allowed(self) -> None:
        self.assertTrue(self._decide().allowed)

    def test_inactive_vendor_denied(self) -> None:
        for status in ("Pending", "Suspended"):
            self.assertEqual(self._decide(vendor=_vendor(status=status)).reason, "vendor_not_active")

    def test_reserved_tender_requires_mse(self) -> None:
        reserved = _tender(is_reserved_for_mse=True)
        self.assertEqual(self._decide(tender=reserved).reason, "mse_reserved")
        self.assertTrue(self._decide(tender=reserved, vendor=_vendor(business_type="MSE")).allowed)

    def test_tender_must_be_published(self) -> None:
        for status in ("draft", "under_review", "awarded", "cancelled"):
            self.assertEqual(self._decide(tender=_tender(status=status)).reason, "state_mismatch")

    def test_deadline_is_checked_against_now(self) -> None:
        later = datetime.now(timezone.utc) + timedelta(days=10)
        self.assertEqual(self._decide(now=later).reason, "deadline_passed")

    def test_unparseable_deadline_counts_as_passed(self) -> None:
        self.assertEqual(self._decide(tender=_tender(submission_deadline="soon")).reason, "deadline_passed")

    def test_existing_bid_is_duplicate(self) -> None:
        self.assertEqual(self._decide(existing={"id": "b-1"}).reason, "duplicate_bid")

    def test_other_vendors_profile_denied(self) -> None:
        self.assertEqual(self._decide(OTHER_VENDOR).reason, "ownership_mismatch")

    def test_state_denials_raise_conflicts(self) -> None:
        submission = BidSubmission(vendor=_vendor(), tender=_tender(status="draft"))
        with self.assertRaises(ConflictError) as ctx:
            require(VENDOR, "bid.submit", submission)
        self.assertEqual(ctx.exception.code, "tender_not_open")
        self.assertEqual(ctx.exception.http_status, 409)

    def test_mse_denial_raises_authorization_error(self) -> None:
        submission = BidSubmission(vendor=_vendor(), tender=_tender(is_reserved_for_mse=True))
        with self.assertRaises(AuthorizationError) as ctx:
            require(VENDOR, "bid.submit", submission)
        self.assertEqual(ctx.exception.reason, "mse_reserved")
        self.assertEqual(ctx.exception.http_status, 403)
        self.assertEqual(ctx.exception.payload["action"], "bid.submit")


if __name__ == "__main__":
    unittest.main()
