import unittest

from portal.application.audit_service import AuditService
from portal.application.vendor_service import VendorService
from portal.db import get_db
from portal.domain.contracts import ComplianceUpdateInput
from portal.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from tests.helpers.portal_fixtures import (
    FINANCE,
    OFFICER,
    active_vendor,
    login,
    register_vendor,
    seed_staff_users,
    vendor_principal,
)
from tests.helpers.temp_db import TempDbSandbox, build_temp_app, dispose_temp_app


class VendorLifecycleTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="vendor_lifecycle")
        self.app = build_temp_app(self._temp_db)
        self._ctx = self.app.app_context()
        self._ctx.push()
        self.db = get_db()
        seed_staff_users(self.db)
        self.service = VendorService()

    def tearDown(self) -> None:
        self._ctx.pop()
        dispose_temp_app(self.app, self._temp_db)

    def test_registration_starts_pending_and_notifies_officers(self) -> None:
        vendor = register_vendor(self.db, "vendor-a", business_type="MSE")

        self.assertEqual(vendor["status"], "Pending")
        self.assertEqual(vendor["compliance_score"], 0)
        officer_notes = AuditService().list_notifications(self.db, OFFICER)
        self.assertEqual([note["type"] for note in officer_notes], ["vendor_approval"])
        self.assertEqual(officer_notes[0]["related_id"], vendor["id"])
        self.assertFalse(officer_notes[0]["is_read"])

    def test_second_registration_for_same_user_conflicts(self) -> None:
        register_vendor(self.db, "vendor-a")
        with self.assertRaises(ConflictError) as ctx:
            register_vendor(self.db, "vendor-a")
        self.assertEqual(ctx.exception.code, "vendor_already_registered")

    def test_registration_requires_contact_fields(self) -> None:
        from portal.domain.contracts import VendorRegistrationInput

        with self.assertRaises(ValidationError) as ctx:
            self.service.register_vendor(
                self.db,
                vendor_principal("vendor-x"),
                VendorRegistrationInput(
                    name="No Phone Ltd",
                    business_type="MSE",
                    contact_person="Kim",
                    email="kim@vendor.test",
                    phone="",
                    address="Somewhere",
                ),
            )
        self.assertEqual(ctx.exception.code, "field_required")
        self.assertEqual(ctx.exception.payload["field"], "phone")

    def test_approve_suspend_reactivate_cycle(self) -> None:
        vendor = active_vendor(self.db, "vendor-a")
        self.assertEqual(vendor["status"], "Active")
        self.assertEqual(vendor["approved_by"], OFFICER.user_id)

        with self.assertRaises(ValidationError) as ctx:
            self.service.suspend_vendor(self.db, OFFICER, vendor["id"], "  ")
        self.assertEqual(ctx.exception.code, "reason_required")

        suspended = self.service.suspend_vendor(self.db, OFFICER, vendor["id"], "Expired tax certificate")
        self.assertEqual(suspended["status"], "Suspended")
        self.assertEqual(suspended["rejection_reason"], "Expired tax certificate")

        reactivated = self.service.reactivate_vendor(self.db, OFFICER, vendor["id"])
        self.assertEqual(reactivated["status"], "Active")
        self.assertIsNone(reactivated["rejection_reason"])

        logs = self.service.approval_logs_for(self.db, OFFICER, vendor["id"])
        self.assertCountEqual(
            [(log["previous_status"], log["new_status"]) for log in logs],
            [("Pending", "Active"), ("Active", "Suspended"), ("Suspended", "Active")],
        )

    def test_rejecting_pending_vendor_suspends_with_reason(self) -> None:
        vendor = register_vendor(self.db, "vendor-a")
        rejected = self.service.suspend_vendor(self.db, OFFICER, vendor["id"], "Incomplete documents")

        self.assertEqual(rejected["status"], "Suspended")
        vendor_notes = AuditService().list_notifications(self.db, vendor_principal("vendor-a"))
        self.assertEqual(vendor_notes[0]["type"], "vendor_status")
        self.assertIn("suspended", vendor_notes[0]["message"])

    def test_approving_active_vendor_is_illegal(self) -> None:
        vendor = active_vendor(self.db, "vendor-a")
        with self.assertRaises(ConflictError) as ctx:
            self.service.approve_vendor(self.db, OFFICER, vendor["id"])
        self.assertEqual(ctx.exception.code, "illegal_transition")

    def test_finance_cannot_approve(self) -> None:
        vendor = register_vendor(self.db, "vendor-a")
        with self.assertRaises(AuthorizationError) as ctx:
            self.service.approve_vendor(self.db, FINANCE, vendor["id"])
        self.assertEqual(ctx.exception.reason, "role_mismatch")

    def test_compliance_score_is_clamped_and_history_recorded(self) -> None:
        vendor = active_vendor(self.db, "vendor-a")

        updated = self.service.update_compliance_score(
            self.db,
            OFFICER,
            ComplianceUpdateInput(vendor_id=vendor["id"], score=140, note="Excellent delivery", type="positive"),
        )
        self.assertEqual(updated["compliance_score"], 100)

        updated = self.service.update_compliance_score(
            self.db,
            OFFICER,
            ComplianceUpdateInput(vendor_id=vendor["id"], score=-20, note="Late delivery", type="negative"),
        )
        self.assertEqual(updated["compliance_score"], 0)

        updated = self.service.update_compliance_score(
            self.db,
            OFFICER,
            ComplianceUpdateInput(vendor_id=vendor["id"], score=72.46, note="Quarterly review"),
        )
        self.assertEqual(updated["compliance_score"], 72.5)

        history = self.service.compliance_history_for(self.db, OFFICER, vendor["id"])
        self.assertEqual(len(history), 3)
        self.assertEqual(
            sorted((row["previous_score"], row["new_score"]) for row in history),
            sorted([(0.0, 100.0), (100.0, 0.0), (0.0, 72.5)]),
        )

    def test_compliance_note_required(self) -> None:
        vendor = active_vendor(self.db, "vendor-a")
        with self.assertRaises(ValidationError):
            self.service.update_compliance_score(
                self.db,
                OFFICER,
                ComplianceUpdateInput(vendor_id=vendor["id"], score=50, note=""),
            )

    def test_owner_updates_profile_but_not_others(self) -> None:
        vendor = active_vendor(self.db, "vendor-a")
        active_vendor(self.db, "vendor-b")

        updated = self.service.update_profile(
            self.db,
            vendor_principal("vendor-a"),
            vendor["id"],
            {
                "phone": "+91 555 0199",
                "bank_details": {"accountName": "Acme", "accountNumber": "001", "bankName": "SBI", "ifscCode": "SBIN0001"},
            },
        )
        self.assertEqual(updated["phone"], "+91 555 0199")
        self.assertEqual(updated["bank_details"]["bankName"], "SBI")
        self.assertEqual(updated["status"], "Active")

        with self.assertRaises(AuthorizationError) as ctx:
            self.service.update_profile(self.db, vendor_principal("vendor-b"), vendor["id"], {"phone": "1"})
        self.assertEqual(ctx.exception.reason, "ownership_mismatch")

    def test_verify_document(self) -> None:
        vendor = register_vendor(self.db, "vendor-a")
        self.service.update_profile(
            self.db,
            vendor_principal("vendor-a"),
            vendor["id"],
            {"documents": [{"name": "GST certificate", "type": "tax", "url": "https://files.test/gst.pdf"}]},
        )

        verified = self.service.verify_document(self.db, OFFICER, vendor["id"], 0)
        self.assertTrue(verified["documents"][0]["verified_at"])

        with self.assertRaises(NotFoundError):
            self.service.verify_document(self.db, OFFICER, vendor["id"], 3)

    def test_vendor_cannot_mark_documents_verified(self) -> None:
        vendor = register_vendor(self.db, "vendor-a")
        owner = vendor_principal("vendor-a")
        gst = {"name": "GST certificate", "type": "tax", "url": "https://files.test/gst.pdf"}

        claimed = self.service.update_profile(
            self.db, owner, vendor["id"], {"documents": [{**gst, "verified_at": "2026-01-01T00:00:00Z"}]}
        )
        self.assertNotIn("verified_at", claimed["documents"][0])

        verified = self.service.verify_document(self.db, OFFICER, vendor["id"], 0)
        stamp = verified["documents"][0]["verified_at"]

        resubmitted = self.service.update_profile(
            self.db,
            owner,
            vendor["id"],
            {
                "documents": [
                    {**gst, "verified_at": "2030-01-01T00:00:00Z"},
                    {"name": "PAN card", "type": "other", "url": "https://files.test/pan.pdf", "verified_at": stamp},
                ]
            },
        )
        self.assertEqual(resubmitted["documents"][0]["verified_at"], stamp)
        self.assertNotIn("verified_at", resubmitted["documents"][1])

        replaced = self.service.update_profile(
            self.db, owner, vendor["id"], {"documents": [{**gst, "url": "https://files.test/gst-v2.pdf"}]}
        )
        self.assertNotIn("verified_at", replaced["documents"][0])

    def test_vendor_sees_only_own_profile(self) -> None:
        own = active_vendor(self.db, "vendor-a")
        other = active_vendor(self.db, "vendor-b")

        listed = self.service.list_vendors(self.db, vendor_principal("vendor-a"))
        self.assertEqual([row["id"] for row in listed], [own["id"]])
        with self.assertRaises(NotFoundError):
            self.service.get_visible_vendor(self.db, vendor_principal("vendor-a"), other["id"])
        self.assertEqual(len(self.service.list_vendors(self.db, FINANCE)), 2)


class VendorRoutesTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="vendor_routes")
        self.app = build_temp_app(self._temp_db)
        self.client = self.app.test_client()
        with self.app.app_context():
            db = get_db()
            seed_staff_users(db)
            self.vendor = active_vendor(db, "vendor-a")
        login(self.client, OFFICER)

    def tearDown(self) -> None:
        dispose_temp_app(self.app, self._temp_db)

    def test_suspend_without_reason_is_400(self) -> None:
        response = self.client.post(f"/api/vendors/{self.vendor['id']}/suspend", json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "reason_required")

        response = self.client.post(f"/api/vendors/{self.vendor['id']}/suspend", json={"reason": "Audit findings"})
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["vendor"]["status"], "Suspended")
        self.assertEqual(body["flow"]["allowed_actions"], ["reactivate"])

    def test_compliance_update_and_history(self) -> None:
        response = self.client.post(
            f"/api/vendors/{self.vendor['id']}/compliance",
            json={"score": 88, "note": "On-time deliveries", "type": "positive"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["vendor"]["compliance_score"], 88)

        history = self.client.get(f"/api/vendors/{self.vendor['id']}/compliance").get_json()["items"]
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]["score_change"], 88)
        self.assertEqual(history[0]["updated_by"], OFFICER.user_id)

    def test_vendor_cannot_read_other_profile(self) -> None:
        login(self.client, vendor_principal("vendor-b"))
        response = self.client.get(f"/api/vendors/{self.vendor['id']}")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.get("/api/vendors/me").get_json(), {"vendor": None})


if __name__ == "__main__":
    unittest.main()
