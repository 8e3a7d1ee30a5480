import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from agent.config import DEFAULT_OBFUSCATION_KEY, load_config
from agent.exceptions import ConfigError


class TestConfig(unittest.TestCase):
    def _load(self, tmpdir: str, data: dict):
        config_path = Path(tmpdir) / "config.json"
        data = {"data_dir": str(Path(tmpdir) / "data"), **data}
        config_path.write_text(json.dumps(data))
        with mock.patch.dict(os.environ, {}, clear=True):
            return load_config(str(config_path))

    def test_load_config_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            data_dir = Path(tmpdir) / "data"
            config = self._load(tmpdir, {})

            self.assertEqual(config.chat_model.provider, "openai")
            self.assertEqual(config.provider.connect_timeout, 5.0)
            self.assertEqual(config.provider.read_timeout, 120.0)
            self.assertEqual(config.provider.max_retries, 3)
            self.assertEqual(config.tool_execution.outbound_timeout, 8.0)
            self.assertTrue(config.tool_execution.parallel)
            self.assertEqual(config.relay.backend, "memory")
            self.assertEqual(config.relay.connection_ttl, 60.0)
            self.assertEqual(config.relay.signal_ttl, 30.0)
            self.assertEqual(config.relay.purge_interval, 60.0)
            self.assertEqual(config.relay.storage_path, str(data_dir / "relay.db"))
            self.assertTrue(config.stream.obfuscate)
            self.assertEqual(config.stream.obfuscation_key, DEFAULT_OBFUSCATION_KEY)
            self.assertEqual(config.stream.sentinel, "[DONE]")
            self.assertEqual(config.storage.projects_path, str(data_dir / "projects.db"))
            self.assertFalse(config.auth.enabled)
            self.assertFalse(config.telemetry.enabled)
            self.assertFalse(config.telemetry.otel_enabled)
            self.assertEqual(config.telemetry.log_dir, str(data_dir / "metrics"))
            self.assertEqual(config.max_steps, 25)
            self.assertTrue((data_dir / "logs").is_dir())

    def test_missing_file_yields_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cwd = os.getcwd()
            os.chdir(tmpdir)
            try:
                with mock.patch.dict(os.environ, {}, clear=True):
                    config = load_config(str(Path(tmpdir) / "absent.json"))
            finally:
                os.chdir(cwd)
            self.assertEqual(config.max_steps, 25)
            self.assertEqual(config.chat_model.model_name, "gpt-4o-mini")

    def test_env_overrides(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"
            config_path.write_text(json.dumps({"data_dir": str(Path(tmpdir) / "data")}))
            env = {
                "AI_API_URL": "http://ai.example:9000",
                "AI_API_KEY": "secret",
                "STREAM_OBFUSCATION_KEY": "other-key",
            }
            with mock.patch.dict(os.environ, env, clear=True):
                config = load_config(str(config_path))

            self.assertEqual(config.chat_model.base_url, "http://ai.example:9000")
            self.assertEqual(config.chat_model.api_key, "secret")
            self.assertEqual(config.stream.obfuscation_key, "other-key")

    def test_outbound_timeout_must_be_single_digit(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                self._load(tmpdir, {"tool_execution": {"outbound_timeout": 15}})

    def test_invalid_relay_backend_raises(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                self._load(tmpdir, {"relay": {"backend": "redis"}})

    def test_boolean_is_not_a_number(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                self._load(tmpdir, {"max_steps": True})

    def test_auth_enabled_requires_secret(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                self._load(tmpdir, {"auth": {"enabled": True}})

    def test_invalid_json_raises(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"
            config_path.write_text("{not json")
            with self.assertRaises(ConfigError):
                load_config(str(config_path))
