import tempfile
import unittest
from pathlib import Path

from timesheet_doctor.config import DEFAULT_DATABASE_URL, Settings, build_context, build_text_client
from timesheet_doctor.summarizer import DEFAULT_MODEL, AnthropicTextClient


class SettingsTests(unittest.TestCase):
    def test_defaults(self):
        settings = Settings.from_env({})
        self.assertEqual(settings.database_url, DEFAULT_DATABASE_URL)
        self.assertIsNone(settings.anthropic_api_key)
        self.assertEqual(settings.model, DEFAULT_MODEL)
        self.assertEqual(settings.summary_timeout, 30.0)

    def test_database_url_precedence(self):
        env = {"POSTGRES_URL": "postgresql://pg", "DATABASE_URL": "postgresql://db"}
        self.assertEqual(Settings.from_env(env).database_url, "postgresql://db")
        env["TIMESHEET_DOCTOR_DATABASE_URL"] = "sqlite:///own.db"
        self.assertEqual(Settings.from_env(env).database_url, "sqlite:///own.db")
        self.assertEqual(Settings.from_env({"POSTGRES_URL": "postgresql://pg"}).database_url, "postgresql://pg")

    def test_cli_override(self):
        settings = Settings.from_env({}).with_database_url("sqlite:///other.db")
        self.assertEqual(settings.database_url, "sqlite:///other.db")
        self.assertEqual(Settings.from_env({}).with_database_url(None).database_url, DEFAULT_DATABASE_URL)

    def test_bad_timeout(self):
        with self.assertRaisesRegex(ValueError, "TIMESHEET_DOCTOR_SUMMARY_TIMEOUT"):
            Settings.from_env({"TIMESHEET_DOCTOR_SUMMARY_TIMEOUT": "soon"})

    def test_text_client_only_with_credential(self):
        self.assertIsNone(build_text_client(Settings.from_env({})))
        client = build_text_client(
            Settings.from_env(
                {
                    "ANTHROPIC_API_KEY": "test-key",
                    "TIMESHEET_DOCTOR_MODEL": "test-model",
                    "TIMESHEET_DOCTOR_SUMMARY_TIMEOUT": "12.5",
                }
            )
        )
        self.assertIsInstance(client, AnthropicTextClient)
        self.assertEqual((client.model, client.timeout), ("test-model", 12.5))

    def test_build_context(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            url = f"sqlite:///{Path(tmpdir) / 'ctx.db'}"
            context = build_context(Settings.from_env({"TIMESHEET_DOCTOR_DATABASE_URL": url}))
            try:
                self.assertIsNone(context.text_client)
                self.assertEqual(context.store.list_uploads(), [])
            finally:
                context.store.dispose()


if __name__ == "__main__":
    unittest.main()
