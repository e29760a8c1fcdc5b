import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from serverprep.config import (
    SAMPLE_CONFIG,
    ProvisioningConfig,
    init_config,
    load_config,
    load_ssh_settings,
)
from serverprep.errors import ConfigurationError


class ConfigFileTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "serverprep.conf"

    def write(self, text: str) -> str:
        self.path.write_text(text.strip() + "\n", encoding="utf-8")
        return str(self.path)

    def test_loads_sample_config(self) -> None:
        config = load_config(self.write(SAMPLE_CONFIG))
        self.assertEqual(config.app_name, "myapp")
        self.assertEqual(config.setup_user, "setup")
        self.assertEqual(config.deploy_user, "deploy")
        self.assertEqual(config.server, "example.com")
        self.assertEqual(config.domain, "www.example.com")
        self.assertEqual(config.runtime_version, "3.2.2")
        self.assertEqual(config.deploy_path, "/var/www/myapp")
        self.assertEqual(config.repo_url, "git@example.com:username/myapp.git")

    def test_quote_styles_comments_and_unknown_keys(self) -> None:
        config = load_config(self.write(
            """
# comment
APP_NAME='blog'
SETUP_USER=admin

DEPLOY_USER="deploy"
SERVER="10.0.0.5"
EXTRA_SETTING="kept"
"""
        ))
        self.assertEqual(config.app_name, "blog")
        self.assertEqual(config.setup_user, "admin")
        self.assertEqual(config.extras, {"EXTRA_SETTING": "kept"})

    def test_defaults_for_optional_keys(self) -> None:
        config = load_config(self.write(
            """
APP_NAME="blog"
SETUP_USER="setup"
DEPLOY_USER="deploy"
SERVER="blog.example.com"
"""
        ))
        self.assertEqual(config.deploy_path, "/var/www/blog")
        self.assertEqual(config.domain, "blog.example.com")
        self.assertEqual(config.runtime_version, "3.2.2")
        self.assertIsNone(config.repo_url)

    def test_missing_required_keys_fail(self) -> None:
        path = self.write('APP_NAME="blog"\nSERVER=""')
        with self.assertRaises(ConfigurationError) as ctx:
            load_config(path)
        message = ctx.exception.message
        for key in ("SETUP_USER", "DEPLOY_USER", "SERVER"):
            self.assertIn(key, message)
        self.assertNotIn("APP_NAME", message)

    def test_missing_file_fails(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_config(str(self.path))

    def test_init_does_not_overwrite(self) -> None:
        self.assertTrue(init_config(str(self.path)))
        self.assertEqual(self.path.read_text(encoding="utf-8"), SAMPLE_CONFIG)
        self.path.write_text("APP_NAME=changed\n", encoding="utf-8")
        self.assertFalse(init_config(str(self.path)))
        self.assertEqual(self.path.read_text(encoding="utf-8"), "APP_NAME=changed\n")


class ProvisioningConfigTests(unittest.TestCase):
    BASE = {
        "APP_NAME": "blog",
        "SETUP_USER": "setup",
        "DEPLOY_USER": "deploy",
        "SERVER": "example.com",
    }

    def test_runtime_alias(self) -> None:
        config = ProvisioningConfig.from_mapping({**self.BASE, "RUBY_VERSION": "3.1.4"})
        self.assertEqual(config.runtime_version, "3.1.4")
        self.assertNotIn("RUBY_VERSION", config.extras)

    def test_canonical_runtime_key_wins(self) -> None:
        config = ProvisioningConfig.from_mapping(
            {**self.BASE, "RUBY_VERSION": "3.1.4", "RUNTIME_VERSION": "3.3.0"}
        )
        self.assertEqual(config.runtime_version, "3.3.0")

    def test_trailing_slash_is_dropped(self) -> None:
        config = ProvisioningConfig.from_mapping({**self.BASE, "DEPLOY_PATH": "/srv/blog/"})
        self.assertEqual(config.deploy_path, "/srv/blog")

    def test_unsafe_values_are_rejected(self) -> None:
        cases = [
            {"DEPLOY_PATH": "relative/path"},
            {"DEPLOY_PATH": "/"},
            {"DEPLOY_PATH": "/srv/my app"},
            {"DEPLOY_USER": "deploy; rm -rf /"},
            {"APP_NAME": "../etc"},
            {"DOMAIN": "example.com; include /etc/passwd"},
        ]
        for override in cases:
            with self.subTest(override=override):
                with self.assertRaises(ConfigurationError):
                    ProvisioningConfig.from_mapping({**self.BASE, **override})

    def test_to_dict_round_trips_known_keys(self) -> None:
        config = ProvisioningConfig.from_mapping(self.BASE)
        self.assertEqual(config.to_dict()["DEPLOY_PATH"], "/var/www/blog")


class SSHSettingsTests(unittest.TestCase):
    def test_environment_values(self) -> None:
        env = {
            "SERVERPREP_SSH_PORT": "2222",
            "SERVERPREP_SSH_KEY_PATH": "/keys/id",
            "SERVERPREP_SSH_TIMEOUT": "5",
        }
        with mock.patch.dict(os.environ, env):
            settings = load_ssh_settings()
        self.assertEqual(settings.port, 2222)
        self.assertEqual(settings.key_path, "/keys/id")
        self.assertEqual(settings.timeout, 5)

    def test_arguments_override_environment(self) -> None:
        with mock.patch.dict(os.environ, {"SERVERPREP_SSH_PORT": "2222"}):
            settings = load_ssh_settings(port=22, key_path="/other")
        self.assertEqual(settings.port, 22)
        self.assertEqual(settings.key_path, "/other")

    def test_bad_port_is_a_configuration_error(self) -> None:
        with mock.patch.dict(os.environ, {"SERVERPREP_SSH_PORT": "ssh"}):
            with self.assertRaises(ConfigurationError):
                load_ssh_settings()


if __name__ == "__main__":
    unittest.main()
