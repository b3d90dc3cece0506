import unittest

from portal.application.audit_service import AuditService
from portal.application.payment_service import QR_NOTE, PaymentService, qr_transaction_id
from portal.core import EventBus, PaymentCreated, PaymentStatusChanged
from portal.db import get_db
from portal.domain.contracts import PaymentCreateInput, PaymentInfoInput
from portal.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from tests.helpers.portal_fixtures import (
    FINANCE,
    OFFICER,
    awarded_tender,
    pending_payment,
    seed_staff_users,
    vendor_principal,
)
from tests.helpers.temp_db import TempDbSandbox, build_temp_app, dispose_temp_app


class PaymentServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="payments")
        self.app = build_temp_app(self._temp_db)
        self._ctx = self.app.app_context()
        self._ctx.push()
        self.db = get_db()
        seed_staff_users(self.db)
        self.service = PaymentService()

    def tearDown(self) -> None:
        self._ctx.pop()
        dispose_temp_app(self.app, self._temp_db)

    def _create(self, tender_id: str, bid_id: str, amount=40000):
        return self.service.create_payment(
            self.db,
            FINANCE,
            PaymentCreateInput(tender_id=tender_id, bid_id=bid_id, amount=amount, payment_method="bank_transfer"),
        )

    def test_payment_for_award_starts_pending(self) -> None:
        tender, bid, _bids = awarded_tender(self.db)
        payment = self._create(tender["id"], bid["id"])

        self.assertEqual(payment["status"], "pending")
        self.assertEqual(payment["vendor_id"], bid["vendor_id"])
        self.assertEqual(payment["related_tender"], tender["id"])
        self.assertEqual(payment["related_bid"], bid["id"])
        self.assertEqual(payment["vendor_user_id"], "vendor-a")
        self.assertEqual(payment["tender_title"], tender["title"])

        notes = AuditService().list_notifications(self.db, vendor_principal("vendor-a"), type="payment")
        self.assertEqual(len(notes), 1)
        self.assertIn("40,000.00", notes[0]["message"])

    def test_rejected_bid_cannot_be_paid(self) -> None:
        tender, _bid, bids = awarded_tender(self.db)
        with self.assertRaises(ConflictError) as ctx:
            self._create(tender["id"], bids[1]["id"])
        self.assertEqual(ctx.exception.code, "award_required")

    def test_bid_from_other_tender_cannot_be_paid(self) -> None:
        tender, _bid, _bids = awarded_tender(self.db, ("vendor-a", "vendor-b"))
        _other, other_bid, _other_bids = awarded_tender(self.db, ("vendor-c",))
        with self.assertRaises(ConflictError) as ctx:
            self._create(tender["id"], other_bid["id"])
        self.assertEqual(ctx.exception.code, "award_required")

    def test_second_live_payment_conflicts_until_failed(self) -> None:
        tender, bid, _bids = awarded_tender(self.db)
        first = self._create(tender["id"], bid["id"])

        with self.assertRaises(ConflictError) as ctx:
            self._create(tender["id"], bid["id"])
        self.assertEqual(ctx.exception.code, "duplicate_payment")

        self.service.fail_payment(self.db, FINANCE, first["id"], "Bank rejected transfer")
        retry = self._create(tender["id"], bid["id"])
        self.assertNotEqual(retry["id"], first["id"])
        self.assertEqual(retry["status"], "pending")

    def test_create_validates_amount_and_method(self) -> None:
        tender, bid, _bids = awarded_tender(self.db)
        with self.assertRaises(ValidationError):
            self._create(tender["id"], bid["id"], amount=0)
        with self.assertRaises(ValidationError) as ctx:
            self.service.create_payment(
                self.db,
                FINANCE,
                PaymentCreateInput(tender_id=tender["id"], bid_id=bid["id"], amount=10, payment_method="cash"),
            )
        self.assertEqual(ctx.exception.code, "payment_method_invalid")

    def test_failed_handler_discards_the_payment(self) -> None:
        tender, bid, _bids = awarded_tender(self.db)
        bus = EventBus()

        def broken(_db, _event):
            raise RuntimeError("notification store down")

        bus.subscribe(PaymentCreated, broken)
        service = PaymentService(event_bus=bus)

        with self.assertLogs("portal", level="ERROR"):
            with self.assertRaises(RuntimeError):
                service.create_payment(
                    self.db,
                    FINANCE,
                    PaymentCreateInput(
                        tender_id=tender["id"], bid_id=bid["id"], amount=40000, payment_method="bank_transfer"
                    ),
                )
        self.assertEqual(self.service.list_payments(self.db, FINANCE), [])

    def test_failed_handler_keeps_payment_status(self) -> None:
        payment = pending_payment(self.db)
        bus = EventBus()

        def broken(_db, _event):
            raise RuntimeError("notification store down")

        bus.subscribe(PaymentStatusChanged, broken)
        service = PaymentService(event_bus=bus)

        with self.assertLogs("portal", level="ERROR"):
            with self.assertRaises(RuntimeError):
                service.fail_payment(self.db, FINANCE, payment["id"], "Bank rejected transfer")
        self.assertEqual(self.service.get_payment(self.db, payment["id"])["status"], "pending")

    def test_non_finite_amount_is_rejected(self) -> None:
        tender, bid, _bids = awarded_tender(self.db)
        for amount in ("1e999", float("inf"), float("nan")):
            with self.assertRaises(ValidationError) as ctx:
                self._create(tender["id"], bid["id"], amount=amount)
            self.assertEqual(ctx.exception.code, "amount_invalid")

    def test_vendor_cannot_create_payment(self) -> None:
        tender, bid, _bids = awarded_tender(self.db)
        with self.assertRaises(AuthorizationError):
            self.service.create_payment(
                self.db,
                vendor_principal("vendor-a"),
                PaymentCreateInput(tender_id=tender["id"], bid_id=bid["id"], amount=10, payment_method="check"),
            )

    def test_vendor_submits_info_then_finance_completes(self) -> None:
        payment = pending_payment(self.db)

        processing = self.service.submit_payment_info(
            self.db,
            vendor_principal("vendor-a"),
            PaymentInfoInput(
                payment_id=payment["id"],
                payment_method="credit_card",
                transaction_id="TXN-0042",
                notes="Paid from corporate card",
            ),
        )
        self.assertEqual(processing["status"], "processing")
        self.assertEqual(processing["transaction_id"], "TXN-0042")
        self.assertIn("Vendor note: Paid from corporate card", processing["notes"])

        completed = self.service.complete_payment(self.db, FINANCE, payment["id"])
        self.assertEqual(completed["status"], "completed")
        self.assertTrue(completed["payment_date"])
        self.assertEqual(completed["processed_by"], FINANCE.user_id)

        with self.assertRaises(ConflictError):
            self.service.fail_payment(self.db, FINANCE, payment["id"])

    def test_other_vendor_cannot_submit_info(self) -> None:
        payment = pending_payment(self.db)
        with self.assertRaises(AuthorizationError) as ctx:
            self.service.submit_payment_info(
                self.db,
                vendor_principal("vendor-b"),
                PaymentInfoInput(payment_id=payment["id"], payment_method="check", transaction_id="CHK-1"),
            )
        self.assertEqual(ctx.exception.reason, "ownership_mismatch")

    def test_submit_info_requires_transaction_id(self) -> None:
        payment = pending_payment(self.db)
        with self.assertRaises(ValidationError) as ctx:
            self.service.submit_payment_info(
                self.db,
                vendor_principal("vendor-a"),
                PaymentInfoInput(payment_id=payment["id"], payment_method="check", transaction_id=" "),
            )
        self.assertEqual(ctx.exception.code, "transaction_id_required")

    def test_complete_requires_processing(self) -> None:
        payment = pending_payment(self.db)
        with self.assertRaises(ConflictError) as ctx:
            self.service.complete_payment(self.db, FINANCE, payment["id"])
        self.assertEqual(ctx.exception.code, "illegal_transition")

    def test_officer_pays_via_qr_on_vendors_behalf(self) -> None:
        payment = pending_payment(self.db)

        paid = self.service.pay_via_qr(self.db, OFFICER, payment["id"])

        self.assertEqual(paid["status"], "processing")
        self.assertEqual(paid["payment_method"], "bank_transfer")
        self.assertTrue(paid["transaction_id"].startswith("QR-"))
        self.assertEqual(paid["notes"], QR_NOTE)

        with self.assertRaises(ConflictError):
            self.service.pay_via_qr(self.db, vendor_principal("vendor-a"), payment["id"])

    def test_qr_transaction_id_format(self) -> None:
        self.assertEqual(qr_transaction_id(1700000000123), "QR-1700000000123")

    def test_failed_payment_records_reason(self) -> None:
        payment = pending_payment(self.db)
        failed = self.service.fail_payment(self.db, FINANCE, payment["id"], "Account closed")
        self.assertEqual(failed["status"], "failed")
        self.assertIn("Failed: Account closed", failed["notes"])

    def test_vendor_sees_only_own_payments(self) -> None:
        payment = pending_payment(self.db)

        own = self.service.list_payments(self.db, vendor_principal("vendor-a"))
        self.assertEqual([row["id"] for row in own], [payment["id"]])
        self.assertEqual(self.service.list_payments(self.db, vendor_principal("vendor-b")), [])
        with self.assertRaises(NotFoundError):
            self.service.get_visible_payment(self.db, vendor_principal("vendor-b"), payment["id"])
        self.assertEqual(len(self.service.list_payments(self.db, FINANCE, status="pending")), 1)


if __name__ == "__main__":
    unittest.main()
