"""
Tests for image rendering, the quota circuit breaker and image edits.
"""

import os
import tempfile
import unittest
from unittest.mock import MagicMock

from seo_wizard.circuit_breaker import QuotaCircuitBreaker, placeholder_image_url
from seo_wizard.clients.gemini import InlineImage
from seo_wizard.config import MODEL_IMAGE_PRO, PipelineConfig
from seo_wizard.errors import ErrorKind, ImageQuotaExhausted, InvalidInputError, ProviderError
from seo_wizard.image_generator import ImageRenderer
from seo_wizard.rate_limiter import TokenBucketRateLimiter
from seo_wizard.retry import BackoffPolicy

PNG = InlineImage(data=b"\x89PNG-bytes", mime_type="image/png")


def make_renderer(client, breaker=None):
    config = PipelineConfig(image_policy=BackoffPolicy(retries=1, initial_delay=0))
    limiter = TokenBucketRateLimiter(capacity=100, refill_per_second=100)
    return ImageRenderer(client, breaker=breaker, config=config, limiter=limiter)


class TestImageRenderer(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.client.generate_image.return_value = PNG
        self.breaker = QuotaCircuitBreaker()
        self.renderer = make_renderer(self.client, self.breaker)

    def test_render_returns_data_url(self):
        rendered = self.renderer.render("A solar farm at dawn", "16:9")
        self.assertTrue(rendered.url.startswith("data:image/png;base64,"))
        self.assertFalse(rendered.placeholder)
        self.assertEqual(rendered.model_used, "gemini-2.5-flash-image")

    def test_quota_trips_breaker_and_second_call_skips_network(self):
        self.client.generate_image.side_effect = ProviderError("429 RESOURCE_EXHAUSTED", ErrorKind.QUOTA)

        first = self.renderer.render("A solar farm at dawn", "16:9")
        self.assertTrue(first.placeholder)
        self.assertTrue(first.url.startswith("https://placehold.co/1200x675/"))
        self.assertTrue(self.breaker.is_open)
        self.assertEqual(self.client.generate_image.call_count, 1)

        second = self.renderer.render("Solar panels on a roof", "1:1")
        self.assertTrue(second.placeholder)
        self.assertEqual(self.client.generate_image.call_count, 1)

    def test_fresh_breaker_starts_closed(self):
        self.breaker.trip("quota")
        other = make_renderer(self.client, QuotaCircuitBreaker())
        self.assertFalse(other.render("A wind turbine", "16:9").placeholder)

    def test_transient_failure_is_retried(self):
        self.client.generate_image.side_effect = [ProviderError("503 UNAVAILABLE", ErrorKind.UNAVAILABLE), PNG]
        rendered = self.renderer.render("A solar farm", "16:9")
        self.assertFalse(rendered.placeholder)
        self.assertEqual(self.client.generate_image.call_count, 2)

    def test_unsupported_ratio_is_mapped(self):
        self.renderer.render("A panoramic coastline", "21:9")
        args = self.client.generate_image.call_args.args
        self.assertEqual(args[2], "16:9")

    def test_resolution_only_sent_to_pro_models(self):
        rendered = self.renderer.render("A solar farm", "16:9", model="gemini-2.5-flash-image", resolution="2K")
        self.assertIsNone(self.client.generate_image.call_args.args[3])
        self.assertIsNone(rendered.resolution_used)

        rendered = self.renderer.render("A solar farm", "16:9", model=MODEL_IMAGE_PRO, resolution="2K")
        self.assertEqual(self.client.generate_image.call_args.args[3], "2K")
        self.assertEqual(rendered.resolution_used, "2K")

    def test_invalid_ratio_and_resolution_rejected(self):
        with self.assertRaises(InvalidInputError):
            self.renderer.render("A solar farm", "5:4")
        with self.assertRaises(InvalidInputError):
            self.renderer.render("A solar farm", "16:9", resolution="8K")
        self.client.generate_image.assert_not_called()

    def test_edit_image(self):
        edited = InlineImage(data=b"edited", mime_type="image/jpeg")
        self.client.edit_image.return_value = edited

        url = self.renderer.edit(PNG.to_data_url(), "make it sunset")

        self.assertEqual(url, edited.to_data_url())
        source, instruction = self.client.edit_image.call_args.args[1:]
        self.assertEqual(source.data, PNG.data)
        self.assertEqual(instruction, "make it sunset")

    def test_edit_rejects_placeholders_and_empty_instructions(self):
        with self.assertRaises(InvalidInputError):
            self.renderer.edit(placeholder_image_url("solar"), "make it sunset")
        with self.assertRaises(InvalidInputError):
            self.renderer.edit(PNG.to_data_url(), "   ")

    def test_edit_quota_trips_breaker(self):
        self.client.edit_image.side_effect = ProviderError("429", ErrorKind.QUOTA)
        with self.assertRaises(ImageQuotaExhausted):
            self.renderer.edit(PNG.to_data_url(), "brighter")
        self.assertTrue(self.breaker.is_open)
        with self.assertRaises(ImageQuotaExhausted):
            self.renderer.edit(PNG.to_data_url(), "brighter")
        self.assertEqual(self.client.edit_image.call_count, 1)

    def test_save_image(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = ImageRenderer.save_image(PNG.to_data_url(), "Hero Image", tmp)
            self.assertEqual(path.name, "hero-image.png")
            with open(path, 'rb') as f:
                self.assertEqual(f.read(), PNG.data)
            self.assertTrue(os.path.exists(path))

            with self.assertRaises(InvalidInputError):
                ImageRenderer.save_image("https://placehold.co/1200x675", "hero", tmp)


class TestCircuitBreaker(unittest.TestCase):

    def test_trip_and_reset(self):
        breaker = QuotaCircuitBreaker()
        self.assertFalse(breaker.is_open)
        breaker.trip("429")
        self.assertTrue(breaker.is_open)
        self.assertEqual(breaker.reason, "429")
        breaker.reset()
        self.assertFalse(breaker.is_open)

    def test_placeholder_is_deterministic(self):
        url = placeholder_image_url("Solar farm", "9:16")
        self.assertEqual(url, placeholder_image_url("Solar farm", "9:16"))
        self.assertTrue(url.startswith("https://placehold.co/675x1200/"))
        self.assertIn("Solar%20farm", url)


if __name__ == '__main__':
    unittest.main()
