"""
Tests for error classification at the Gemini boundary and user-facing messages.
"""

import unittest
from unittest.mock import MagicMock, patch

import httpx

from seo_wizard.clients.gemini import (GeminiClient, InlineImage, classify_provider_error,
                                       extract_http_status_code)
from seo_wizard.errors import (ConfigurationError, ErrorKind, ImageQuotaExhausted, MalformedOutputError,
                               ProviderError, PublishAuthError, PublishConnectionError, WizardError,
                               friendly_error_message)


class TestClassifyProviderError(unittest.TestCase):

    def test_quota(self):
        error = classify_provider_error(Exception("429 RESOURCE_EXHAUSTED. {'code': 429}"))
        self.assertEqual(error.kind, ErrorKind.QUOTA)
        self.assertEqual(error.status_code, 429)
        self.assertTrue(error.retryable)

    def test_overloaded(self):
        self.assertEqual(classify_provider_error(Exception("503 UNAVAILABLE: model overloaded")).kind,
                         ErrorKind.UNAVAILABLE)

    def test_not_found(self):
        self.assertEqual(classify_provider_error(Exception("404 NOT_FOUND models/x")).kind, ErrorKind.NOT_FOUND)

    def test_auth(self):
        error = classify_provider_error(Exception("400 INVALID_ARGUMENT: API key not valid"))
        self.assertEqual(error.kind, ErrorKind.AUTH)
        self.assertFalse(error.retryable)

    def test_transport(self):
        error = classify_provider_error(httpx.ConnectError("connection refused"))
        self.assertEqual(error.kind, ErrorKind.TRANSPORT)

    def test_unknown(self):
        self.assertEqual(classify_provider_error(Exception("something odd")).kind, ErrorKind.UNKNOWN)

    def test_extract_http_status_code(self):
        self.assertEqual(extract_http_status_code(Exception("{'code': 503, 'status': 'UNAVAILABLE'}")), 503)
        self.assertEqual(extract_http_status_code(Exception("429 Too Many Requests")), 429)
        self.assertIsNone(extract_http_status_code(Exception("no status here")))


class TestGeminiClient(unittest.TestCase):

    def test_missing_api_key_fails_fast(self):
        with patch.dict('os.environ', {}, clear=True):
            with self.assertRaises(ConfigurationError):
                GeminiClient(api_key=None)

    def test_generate_content_classifies_sdk_errors(self):
        sdk = MagicMock()
        sdk.models.generate_content.side_effect = Exception("429 RESOURCE_EXHAUSTED")
        client = GeminiClient(api_key="key", client=sdk)

        with self.assertRaises(ProviderError) as ctx:
            client.generate_content("gemini-2.5-pro", "prompt")
        self.assertEqual(ctx.exception.kind, ErrorKind.QUOTA)

    def test_generate_content_returns_text(self):
        sdk = MagicMock()
        response = MagicMock()
        response.text = '{"a": 1}'
        response.candidates = []
        sdk.models.generate_content.return_value = response
        client = GeminiClient(api_key="key", client=sdk)

        result = client.generate_content("gemini-2.5-pro", "prompt", {"response_mime_type": "application/json"})
        self.assertEqual(result.text, '{"a": 1}')

    def test_generate_image_without_image_part(self):
        sdk = MagicMock()
        response = MagicMock()
        response.candidates = []
        sdk.models.generate_content.return_value = response
        client = GeminiClient(api_key="key", client=sdk)

        with self.assertRaises(MalformedOutputError):
            client.generate_image("gemini-2.5-flash-image", "a sunset", "16:9")

    def test_inline_image_data_url(self):
        image = InlineImage(data=b"\x89PNG", mime_type="image/png")
        decoded = InlineImage.from_data_url(image.to_data_url())
        self.assertEqual(decoded.data, b"\x89PNG")
        self.assertEqual(decoded.mime_type, "image/png")
        with self.assertRaises(ValueError):
            InlineImage.from_data_url("https://placehold.co/1200x675")


class TestFriendlyErrorMessage(unittest.TestCase):

    def test_quota_message(self):
        message = friendly_error_message(ImageQuotaExhausted())
        self.assertIn("Quota exceeded", message)

    def test_embedded_provider_json_is_unwrapped(self):
        error = WizardError('400 Bad Request {"error": {"code": 400, "message": "Invalid prompt"}}')
        self.assertEqual(friendly_error_message(error), "Invalid prompt")

    def test_publish_errors(self):
        self.assertIn("application password", friendly_error_message(PublishAuthError("401", status_code=401)))
        self.assertIn("CORS", friendly_error_message(PublishConnectionError("refused")))

    def test_wording_follows_kind_not_text(self):
        self.assertEqual(friendly_error_message(WizardError("quota of 429 tags reached")),
                         "quota of 429 tags reached")
        self.assertIn("Quota exceeded", friendly_error_message(ProviderError("Too many requests", ErrorKind.QUOTA)))
        self.assertEqual(friendly_error_message(ValueError("API key not valid")), "API key not valid")

    def test_invalid_key(self):
        error = ProviderError("API key not valid", ErrorKind.AUTH)
        self.assertEqual(friendly_error_message(error), "Invalid API key. Check your settings.")


if __name__ == '__main__':
    unittest.main()
