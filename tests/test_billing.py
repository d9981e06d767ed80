import base64
import os
import tempfile
import unittest
from datetime import date

from invoice_pdf.billing import build_invoice_data, invoice_number_for, load_logo_base64, split_total
from invoice_pdf.errors import InvalidInputData

SUBSCRIPTION = {
    "_id": "65f1c2ab9d3e4f5a6b7c8d9e",
    "startDate": "2026-01-15T00:00:00Z",
    "endDate": "2026-02-14T00:00:00Z",
    "amount": 1200,
    "currency": "xof",
    "paymentStatus": "paid",
    "isFreeTrial": False,
}
CONTRIBUTOR = {
    "name": "Test Contributor",
    "email": "test@contributor.com",
    "address": {"street": "123 Test Street", "city": "Test City", "postalCode": "12345", "country": "Test Country"},
}
PACKAGE = {"name": "Test Package", "duration": 30, "durationUnit": "days"}


class BillingTests(unittest.TestCase):
    def test_invoice_number_uses_last_eight_characters_uppercased(self) -> None:
        self.assertEqual(invoice_number_for("65f1c2ab9d3e4f5a6b7c8d9e"), "INV-6B7C8D9E")

    def test_invoice_number_requires_id(self) -> None:
        with self.assertRaises(InvalidInputData):
            invoice_number_for("")

    def test_split_total_is_tax_inclusive(self) -> None:
        totals = split_total(1200.0, 0.2, is_free_trial=False)

        self.assertEqual(totals.subtotal, 1000.0)
        self.assertEqual(totals.tax, 200.0)
        self.assertEqual(totals.total, 1200.0)

    def test_free_trial_is_zero_rated(self) -> None:
        totals = split_total(1200.0, 0.2, is_free_trial=True)

        self.assertEqual((totals.subtotal, totals.tax, totals.total), (0.0, 0.0, 0.0))

    def test_build_invoice_data_from_records(self) -> None:
        invoice = build_invoice_data(SUBSCRIPTION, CONTRIBUTOR, PACKAGE, tax_rate=0.2, today=date(2026, 1, 15))

        self.assertEqual(invoice.invoice_number, "INV-6B7C8D9E")
        self.assertEqual(invoice.invoice_date, "Jan 15, 2026")
        self.assertEqual(invoice.subscription.start_date, "Jan 15, 2026")
        self.assertEqual(invoice.subscription.duration, "30 days")
        self.assertEqual(invoice.billing.currency, "XOF")
        self.assertEqual(invoice.billing.subtotal, 1000.0)
        self.assertEqual(invoice.contributor.address.city_line, "Test City, 12345")

    def test_build_invoice_data_requires_contributor_name(self) -> None:
        with self.assertRaises(InvalidInputData):
            build_invoice_data(SUBSCRIPTION, {"email": "x@example.com"}, PACKAGE)

    def test_non_object_address_is_invalid_input(self) -> None:
        contributor = dict(CONTRIBUTOR, address="12 Rue des Jardins, Dakar")

        with self.assertRaises(InvalidInputData) as ctx:
            build_invoice_data(SUBSCRIPTION, contributor, PACKAGE)
        self.assertIn("contributor.address", str(ctx.exception))

    def test_free_trial_flag_accepts_string_spellings(self) -> None:
        for raw, expected in (("false", False), ("0", False), ("true", True), (True, True)):
            with self.subTest(raw=raw):
                invoice = build_invoice_data(dict(SUBSCRIPTION, isFreeTrial=raw), CONTRIBUTOR, PACKAGE)
                self.assertIs(invoice.subscription.is_free_trial, expected)
                self.assertEqual(invoice.billing.total, 0.0 if expected else 1200.0)

        with self.assertRaises(InvalidInputData):
            build_invoice_data(dict(SUBSCRIPTION, isFreeTrial="maybe"), CONTRIBUTOR, PACKAGE)

    def test_load_logo_base64(self) -> None:
        self.assertEqual(load_logo_base64(""), "")
        self.assertEqual(load_logo_base64("/nonexistent/logo.png"), "")

        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "logo.png")
            with open(path, "wb") as handle:
                handle.write(b"\x89PNG")
            self.assertEqual(load_logo_base64(path), base64.b64encode(b"\x89PNG").decode("ascii"))


if __name__ == "__main__":
    unittest.main()
