from types import SimpleNamespace
from unittest.mock import Mock

import openai

from chat_cli.core import AppError, ErrorKind, ModelTarget
from chat_cli.core.selector import annotate, check_capabilities

from .test_base import REQUEST, BaseChatTest, status_error


def catalog_models(*ids):
    return [SimpleNamespace(id=model_id, owned_by="openai") for model_id in ids]


class TestModelSelector(BaseChatTest):
    def test_catalog_id_validated(self):
        target = self.selector.validate_and_resolve("gpt-4.1")
        self.assertEqual(target, ModelTarget(model_id="gpt-4.1"))
        self.mock_client.models.retrieve.assert_called_once_with("gpt-4.1")

    def test_opaque_reference_wins_without_lookup(self):
        target = self.selector.validate_and_resolve("gpt-4o", "ft:gpt-4o:acme::abc123")
        self.assertTrue(target.is_opaque)
        self.assertEqual(target.value, "ft:gpt-4o:acme::abc123")
        self.mock_client.models.retrieve.assert_not_called()

    def test_empty_id(self):
        with self.assertRaises(AppError) as ctx:
            self.selector.validate_and_resolve("")
        self.assertIs(ctx.exception.kind, ErrorKind.VALIDATION)
        self.assertEqual(ctx.exception.code, "model_id_empty")
        self.mock_client.models.retrieve.assert_not_called()

    def test_unknown_model(self):
        self.mock_client.models.retrieve.side_effect = status_error(openai.NotFoundError, 404)
        with self.assertRaises(AppError) as ctx:
            self.selector.validate_and_resolve("gpt-nope")
        self.assertIs(ctx.exception.kind, ErrorKind.MODEL)
        self.assertEqual(ctx.exception.code, "model_not_found")
        self.assertEqual(ctx.exception.metadata["model_id"], "gpt-nope")
        self.assertIn("gpt-nope", ctx.exception.user_message)

    def test_access_denied(self):
        self.mock_client.models.retrieve.side_effect = status_error(openai.PermissionDeniedError, 403)
        with self.assertRaises(AppError) as ctx:
            self.selector.validate_and_resolve("gpt-4o")
        self.assertEqual(ctx.exception.code, "model_access_denied")

    def test_non_text_model_rejected(self):
        with self.assertRaises(AppError) as ctx:
            self.selector.validate_and_resolve("dall-e-3")
        self.assertEqual(ctx.exception.code, "model_not_text")
        self.assertEqual(ctx.exception.metadata["requirement"], "text_output")

    def test_non_streaming_model_rejected(self):
        with self.assertRaises(AppError) as ctx:
            self.selector.validate_and_resolve("o1-pro")
        self.assertEqual(ctx.exception.code, "model_no_streaming")

    def test_non_streaming_model_allowed_for_single_replies(self):
        target = self.selector.validate_and_resolve("o1-pro", require_streaming=False)
        self.assertEqual(target.value, "o1-pro")
        with self.assertRaises(AppError) as ctx:
            self.selector.validate_and_resolve("dall-e-3", require_streaming=False)
        self.assertEqual(ctx.exception.code, "model_not_text")

    def test_fine_tuned_ids_use_base_family(self):
        self.assertEqual(annotate("ft:gpt-4o-mini:acme::x1").output_modalities, ("TEXT",))
        with self.assertRaises(AppError):
            check_capabilities(annotate("ft:whisper-1:acme::x1"))

    def test_swap_returns_previous(self):
        previous = self.selector.swap(ModelTarget(model_id="gpt-4.1"))
        self.assertEqual(previous, ModelTarget(model_id="gpt-4o"))
        self.assertEqual(self.selector.active.value, "gpt-4.1")

    def test_browse_offers_chat_models_sorted(self):
        self.mock_client.models.list.return_value = catalog_models(
            "gpt-4o", "text-embedding-3-small", "gpt-4.1", "tts-1", "o3-pro"
        )
        picker = Mock(return_value="gpt-4.1")

        chosen = self.selector.browse(picker)

        picker.assert_called_once_with("Select a model:", ["gpt-4.1", "gpt-4o"], "gpt-4o")
        self.assertEqual(chosen, ModelTarget(model_id="gpt-4.1"))
        self.assertEqual(self.selector.active, chosen)

    def test_browse_cancelled_keeps_target(self):
        self.mock_client.models.list.return_value = catalog_models("gpt-4o", "gpt-4.1")
        self.assertIsNone(self.selector.browse(Mock(return_value=None)))
        self.assertEqual(self.selector.active, ModelTarget(model_id="gpt-4o"))

    def test_browse_from_opaque_target_clears_reference(self):
        self.selector.swap(ModelTarget(model_id="gpt-4o", model_ref="my-deployment"))
        self.mock_client.models.list.return_value = catalog_models("gpt-4o", "gpt-4.1")
        picker = Mock(return_value="gpt-4.1")

        chosen = self.selector.browse(picker)

        self.assertIsNone(picker.call_args.args[2])
        self.assertFalse(chosen.is_opaque)
        self.assertEqual(self.selector.active.value, "gpt-4.1")

    def test_listing_failure(self):
        self.mock_client.models.list.side_effect = openai.APIConnectionError(request=REQUEST)
        with self.assertRaises(AppError) as ctx:
            self.selector.browse(Mock())
        self.assertEqual(ctx.exception.code, "model_validation_failed")
