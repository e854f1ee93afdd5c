"""Tests for expense extraction."""
import json
import unittest
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from mailspend.gmail.models import EmailImage
from mailspend.llm.extractor import ExpenseExtractor, parse_amount, parse_utc_date
from mailspend.llm.json_response import parse_json_response
from mailspend.utils.exceptions import LLMError

from tests.fakes import FakeGenaiClient

WONG_HTML = (
    "<html><body><p>Consumo con tu Tarjeta de Crédito BBVA</p>"
    "<p>Comercio: WONG SUPERMERCADO</p><p>Monto: S/ 156.40</p></body></html>"
)


class TestExpenseExtractor(unittest.TestCase):
    """Test ExpenseExtractor against a scripted model."""

    def _extractor(self, answers):
        self.client = FakeGenaiClient(answers)
        return ExpenseExtractor(self.client, model_name="test-model", prompt_html_chars=50)

    def test_extracts_card_purchase(self):
        extractor = self._extractor([json.dumps({
            "local": "WONG SUPERMERCADO",
            "amount": 156.40,
            "bank": "BBVA",
            "paymentMethod": "Tarjeta de Crédito",
            "date": None
        })])

        expense = extractor.extract(WONG_HTML, "Consumo Tarjeta")

        self.assertEqual(expense.merchant, "WONG SUPERMERCADO")
        self.assertEqual(expense.amount, Decimal("156.40"))
        self.assertEqual(expense.bank, "BBVA")
        self.assertEqual(expense.payment_method, "Tarjeta de Crédito")
        self.assertIsNone(expense.date)

    def test_request_shape(self):
        extractor = self._extractor(["null"])

        extractor.extract(WONG_HTML, "Consumo Tarjeta")

        call = self.client.models.calls[0]
        self.assertEqual(call["model"], "test-model")
        self.assertEqual(call["config"].response_mime_type, "application/json")
        prompt = call["contents"][0]
        self.assertTrue(prompt.startswith("Subject: Consumo Tarjeta"))
        # body is truncated before it reaches the model
        self.assertNotIn("156.40", prompt)

    def test_null_answer_is_not_a_transaction(self):
        extractor = self._extractor(["null"])
        self.assertIsNone(extractor.extract("<p>50% de descuento</p>", "Promo"))

    def test_empty_object_is_not_a_transaction(self):
        extractor = self._extractor(["{}"])
        self.assertIsNone(extractor.extract("<p>Estado de cuenta</p>", "Estado"))

    def test_missing_merchant_or_amount(self):
        extractor = self._extractor([
            json.dumps({"amount": 10, "bank": "BCP"}),
            json.dumps({"local": "TAMBO", "bank": "BCP"}),
        ])
        self.assertIsNone(extractor.extract("<p>x</p>", "a"))
        self.assertIsNone(extractor.extract("<p>x</p>", "b"))

    def test_non_positive_and_non_numeric_amounts(self):
        extractor = self._extractor([
            json.dumps({"local": "TAMBO", "amount": 0, "bank": "BCP"}),
            json.dumps({"local": "TAMBO", "amount": -12.5, "bank": "BCP"}),
            json.dumps({"local": "TAMBO", "amount": "doce soles", "bank": "BCP"}),
        ])
        for _ in range(3):
            self.assertIsNone(extractor.extract("<p>x</p>", "Consumo"))

    def test_oversized_amount_is_not_a_transaction(self):
        extractor = self._extractor([
            json.dumps({"local": "TAMBO", "amount": 10 ** 30, "bank": "BCP"}),
            json.dumps({"local": "TAMBO", "amount": "1" + "0" * 30, "bank": "BCP"}),
        ])
        for _ in range(2):
            self.assertIsNone(extractor.extract("<p>x</p>", "Consumo"))

    def test_unexpected_answer_shape_error_returns_none(self):
        extractor = self._extractor([json.dumps({"local": "TAMBO", "amount": 8.5, "bank": "BCP"})])
        with patch("mailspend.llm.extractor.parse_amount", side_effect=ArithmeticError("overflow")):
            with self.assertLogs("mailspend", level="WARNING"):
                self.assertIsNone(extractor.extract("<p>x</p>", "Consumo"))

    def test_list_answer_uses_first_entry(self):
        extractor = self._extractor([json.dumps([
            {"local": "TAMBO", "amount": "8.50", "bank": "BCP"},
            {"local": "OXXO", "amount": "3.00", "bank": "BCP"},
        ])])

        self.assertEqual(extractor.extract("<p>x</p>", "Consumos").merchant, "TAMBO")

    def test_stated_date_is_kept(self):
        extractor = self._extractor([json.dumps(
            {"local": "UBER", "amount": "23,90", "bank": "Interbank", "date": "2025-03-14"}
        )])

        expense = extractor.extract("<p>x</p>", "Consumo")

        self.assertEqual(expense.date, date(2025, 3, 14))
        self.assertEqual(expense.amount, Decimal("23.90"))
        self.assertIsNone(expense.payment_method)

    def test_model_failure_returns_none(self):
        extractor = self._extractor(lambda contents, config: RuntimeError("quota exceeded"))
        with self.assertLogs("mailspend", level="ERROR"):
            self.assertIsNone(extractor.extract(WONG_HTML, "Consumo Tarjeta"))

    @patch("mailspend.utils.retry.time.sleep")
    def test_transient_failure_is_retried(self, mock_sleep):
        extractor = self._extractor([
            ConnectionError("reset by peer"),
            json.dumps({"local": "TAMBO", "amount": 8.5, "bank": "BCP"}),
        ])

        self.assertEqual(extractor.extract("<p>x</p>", "Consumo").merchant, "TAMBO")
        self.assertEqual(mock_sleep.call_count, 1)

    def test_garbage_answer_returns_none(self):
        extractor = self._extractor(["I could not find anything"])
        self.assertIsNone(extractor.extract("<p>x</p>", "Consumo"))

    def test_images_are_sent_as_parts(self):
        extractor = self._extractor(["null"])

        extractor.extract("<p>x</p>", "Voucher", images=[EmailImage(b"\x89PNG", "image/png")])

        contents = self.client.models.calls[0]["contents"]
        self.assertEqual(len(contents), 2)
        self.assertEqual(contents[1].inline_data.mime_type, "image/png")
        self.assertEqual(contents[1].inline_data.data, b"\x89PNG")


class TestParseAmount(unittest.TestCase):

    def test_numbers(self):
        self.assertEqual(parse_amount(156.4), Decimal("156.40"))
        self.assertEqual(parse_amount(20), Decimal("20.00"))
        self.assertEqual(parse_amount(Decimal("0.005")), Decimal("0.01"))

    def test_strings_with_currency(self):
        self.assertEqual(parse_amount("S/ 156.40"), Decimal("156.40"))
        self.assertEqual(parse_amount("156.40 PEN"), Decimal("156.40"))
        self.assertEqual(parse_amount("US$ 1,234.50"), Decimal("1234.50"))
        self.assertEqual(parse_amount("45,90"), Decimal("45.90"))

    def test_rejections(self):
        for value in (None, True, 0, -3, "-3.00", "S/ -3.00", "", "abc", "1.2.3", [], {}):
            self.assertIsNone(parse_amount(value), value)

    def test_oversized_amounts(self):
        for value in (10 ** 30, "1" + "0" * 30, "1" + "0" * 30 + ".55", 1e30, Decimal("1e40"), float("inf")):
            self.assertIsNone(parse_amount(value), value)
        self.assertEqual(parse_amount("999999999999.99"), Decimal("999999999999.99"))


class TestParseUtcDate(unittest.TestCase):

    def test_formats(self):
        self.assertEqual(parse_utc_date("2025-03-14"), date(2025, 3, 14))
        self.assertEqual(parse_utc_date("14/03/2025"), date(2025, 3, 14))
        self.assertEqual(parse_utc_date("14.03.2025"), date(2025, 3, 14))

    def test_offset_datetimes_are_converted_to_utc(self):
        self.assertEqual(parse_utc_date("2025-03-14T21:30:00-05:00"), date(2025, 3, 15))
        self.assertEqual(parse_utc_date("2025-03-14T21:30:00Z"), date(2025, 3, 14))

    def test_unparseable(self):
        self.assertIsNone(parse_utc_date("ayer"))
        self.assertIsNone(parse_utc_date(None))


class TestParseJsonResponse(unittest.TestCase):

    def test_code_fence(self):
        self.assertEqual(parse_json_response('```json\n{"a": 1}\n```'), {"a": 1})

    def test_null_and_empty(self):
        self.assertIsNone(parse_json_response("null"))
        self.assertIsNone(parse_json_response(""))

    def test_trailing_comma_and_prose(self):
        self.assertEqual(parse_json_response('Here you go: {"a": [1, 2,],}'), {"a": [1, 2]})

    def test_no_json(self):
        with self.assertRaises(LLMError):
            parse_json_response("nothing here")


if __name__ == "__main__":
    unittest.main()
