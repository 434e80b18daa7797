import argparse
import unittest
from pathlib import Path

from chat_cli.core import AppError, ErrorKind, Severity
from chat_cli.core.config import DEFAULT_MODEL, Settings, default_data_dir


def args(**overrides):
    values = dict(
        model_id=None,
        model_ref=None,
        chat_id=None,
        temperature=None,
        top_p=None,
        max_tokens=None,
        log_level=None,
        verbose=False,
        debug=False,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


class TestSettings(unittest.TestCase):
    def test_defaults(self):
        settings = Settings.from_args(args(), env={"CHAT_CLI_DATA_DIR": "/tmp/chat-cli-test"})
        self.assertEqual(settings.model_id, DEFAULT_MODEL)
        self.assertEqual(settings.model_ref, "")
        self.assertIsNone(settings.chat_id)
        self.assertEqual(settings.inference.max_tokens, 500)
        self.assertIsNone(settings.inference.temperature)
        self.assertEqual(settings.log_level, "info")
        self.assertEqual(settings.db_path, Path("/tmp/chat-cli-test/data.db"))
        self.assertEqual(settings.retry_attempts, 3)
        self.assertAlmostEqual(settings.retry_base_delay, 0.1)

    def test_flags_win_over_environment(self):
        env = {
            "OPENAI_API_KEY": "sk-test",
            "OPENAI_DEFAULT_MODEL": "gpt-4o-mini",
            "CHAT_CLI_MODEL_REF": "env-deployment",
            "CHAT_CLI_LOG_LEVEL": "debug",
        }
        settings = Settings.from_args(
            args(model_id="gpt-4.1", model_ref="flag-deployment", log_level="WARN"), env=env
        )
        self.assertEqual(settings.api_key, "sk-test")
        self.assertEqual(settings.model_id, "gpt-4.1")
        self.assertEqual(settings.model_ref, "flag-deployment")
        self.assertEqual(settings.log_level, "warn")

    def test_environment_used_without_flags(self):
        env = {"OPENAI_DEFAULT_MODEL": "gpt-4o-mini", "CHAT_CLI_MODEL_REF": "env-deployment"}
        settings = Settings.from_args(args(), env=env)
        self.assertEqual(settings.model_id, "gpt-4o-mini")
        self.assertEqual(settings.model_ref, "env-deployment")

    def test_retry_settings_from_environment(self):
        settings = Settings.from_args(
            args(), env={"CHAT_CLI_RETRY_ATTEMPTS": "5", "CHAT_CLI_RETRY_DELAY_MS": "250"}
        )
        self.assertEqual(settings.retry_attempts, 5)
        self.assertAlmostEqual(settings.retry_base_delay, 0.25)

    def test_non_integer_retry_setting(self):
        with self.assertRaises(AppError) as ctx:
            Settings.from_args(args(), env={"CHAT_CLI_RETRY_ATTEMPTS": "many"})
        self.assertEqual(ctx.exception.code, "value_invalid")

    def test_data_dir_resolution(self):
        self.assertEqual(default_data_dir({"CHAT_CLI_DATA_DIR": "/data"}), Path("/data"))
        self.assertEqual(default_data_dir({"XDG_DATA_HOME": "/xdg"}), Path("/xdg/chat-cli"))
        self.assertEqual(default_data_dir({}), Path.home() / ".local" / "share" / "chat-cli")

    def test_validate_ranges(self):
        cases = [
            (args(max_tokens=0), "max_tokens_range"),
            (args(temperature=2.5), "temperature_range"),
            (args(top_p=-0.1), "top_p_range"),
            (args(log_level="loud"), "log_level_invalid"),
        ]
        for namespace, code in cases:
            with self.subTest(code=code):
                settings = Settings.from_args(namespace, env={})
                with self.assertRaises(AppError) as ctx:
                    settings.validate()
                self.assertIs(ctx.exception.kind, ErrorKind.VALIDATION)
                self.assertEqual(ctx.exception.code, code)

    def test_valid_settings_pass(self):
        Settings.from_args(args(temperature=0.0, top_p=1.0, max_tokens=1), env={}).validate()

    def test_missing_api_key_is_critical(self):
        settings = Settings.from_args(args(), env={})
        with self.assertRaises(AppError) as ctx:
            settings.require_credentials()
        self.assertIs(ctx.exception.kind, ErrorKind.CONFIGURATION)
        self.assertIs(ctx.exception.severity, Severity.CRITICAL)
        self.assertFalse(ctx.exception.recoverable)


if __name__ == "__main__":
    unittest.main()
