"""Tests for Gmail payload decoding."""
import base64
import unittest
from datetime import datetime, timezone

from mailspend.gmail.mime import decode_base64url, header_value, parse_message
from mailspend.gmail.models import EmailAttachment

from tests.fakes import b64url, make_message


class TestParseMessage(unittest.TestCase):
    """Test conversion of Gmail resources into RawEmail."""

    def test_nested_html_part_and_headers(self):
        message = make_message(
            "m1",
            "Ana Pérez <ana@example.com>",
            subject="Consumo Tarjeta",
            html="<p>WONG SUPERMERCADO S/ 156.40</p>"
        )

        email = parse_message(message)

        self.assertEqual(email.id, "m1")
        self.assertEqual(email.subject, "Consumo Tarjeta")  # header name is lower-case in the payload
        self.assertEqual(email.from_address, "Ana Pérez <ana@example.com>")
        self.assertEqual(email.to_address, "inbox@example.com")
        self.assertEqual(email.html_body, "<p>WONG SUPERMERCADO S/ 156.40</p>")
        self.assertEqual(email.attachments, [])

    def test_attachments_need_filename_and_attachment_id(self):
        message = make_message("m2", "ana@example.com", attachments=[
            {"mimeType": "image/png", "filename": "voucher.png", "attachmentId": "att-1"},
        ])
        # inline part with a filename but no attachment id is not an attachment
        message["payload"]["parts"].append({
            "mimeType": "image/gif", "filename": "logo.gif", "headers": [], "body": {"size": 0}
        })

        email = parse_message(message)

        self.assertEqual(email.attachments, [EmailAttachment("voucher.png", "image/png", "att-1")])
        self.assertTrue(email.attachments[0].is_image)

    def test_single_part_body(self):
        message = {
            "id": "m3",
            "payload": {
                "mimeType": "text/html",
                "headers": [{"name": "From", "value": "ana@example.com"}],
                "body": {"data": b64url("<b>Yape</b>")}
            }
        }

        email = parse_message(message)

        self.assertEqual(email.html_body, "<b>Yape</b>")
        self.assertEqual(email.subject, "")

    def test_part_charset_is_honoured(self):
        data = base64.urlsafe_b64encode("Crédito".encode("latin-1")).decode("ascii")
        message = {
            "id": "m4",
            "payload": {
                "mimeType": "multipart/alternative",
                "headers": [],
                "parts": [{
                    "mimeType": "text/html",
                    "headers": [{"name": "Content-Type", "value": "text/html; charset=ISO-8859-1"}],
                    "body": {"data": data}
                }]
            }
        }

        self.assertEqual(parse_message(message).html_body, "Crédito")

    def test_first_html_part_wins(self):
        message = make_message("m5", "ana@example.com", html="<p>first</p>")
        message["payload"]["parts"].append({
            "mimeType": "text/html", "headers": [], "body": {"data": b64url("<p>second</p>")}
        })

        self.assertEqual(parse_message(message).html_body, "<p>first</p>")

    def test_sender_is_normalized(self):
        email = parse_message(make_message("m6", "Ana Pérez <ANA@Example.COM>"))
        self.assertEqual(email.sender, "ana@example.com")

    def test_sent_at_falls_back_to_internal_date(self):
        email = parse_message(make_message("m7", "ana@example.com", date="not a date"))
        self.assertEqual(email.sent_at(), datetime(2025, 3, 14, 20, 30, tzinfo=timezone.utc))

    def test_sent_at_uses_date_header(self):
        email = parse_message(make_message("m8", "ana@example.com"))
        self.assertEqual(email.sent_at().astimezone(timezone.utc), datetime(2025, 3, 14, 20, 30, tzinfo=timezone.utc))


class TestHelpers(unittest.TestCase):

    def test_decode_base64url_without_padding(self):
        self.assertEqual(decode_base64url(b64url("ab?>")), b"ab?>")

    def test_header_lookup_is_case_insensitive(self):
        headers = [{"name": "DATE", "value": "x"}]
        self.assertEqual(header_value(headers, "Date"), "x")
        self.assertEqual(header_value(headers, "From"), "")


if __name__ == "__main__":
    unittest.main()
