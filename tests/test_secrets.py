import base64
import json
import os
import tempfile
import unittest
from pathlib import Path

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from serverprep.errors import SecretsError
from serverprep.secrets import LocalSecrets, decrypt_credentials

MASTER_KEY = "00112233445566778899aabbccddeeff"
OTHER_KEY = "ffeeddccbbaa99887766554433221100"

CREDENTIALS_YAML = """\
secret_key_base: abc123
mysql:
  database: blog_production
  username: blog
  password: "s3cr'et"
"""


def marshal_long(value: int) -> bytes:
    if value == 0:
        return b"\x00"
    if 0 < value < 123:
        return bytes([value + 5])
    raw = value.to_bytes((value.bit_length() + 7) // 8, "little")
    return bytes([len(raw)]) + raw


def marshal_string(text: str) -> bytes:
    data = text.encode("utf-8")
    return b"\x04\x08I\"" + marshal_long(len(data)) + data + b"\x06:\x06ET"


def encrypt(plaintext: bytes, key: str = MASTER_KEY) -> str:
    iv = os.urandom(12)
    sealed = AESGCM(bytes.fromhex(key)).encrypt(iv, plaintext, None)
    ciphertext, tag = sealed[:-16], sealed[-16:]
    return "--".join(base64.b64encode(part).decode("ascii") for part in (ciphertext, iv, tag))


class DecryptTests(unittest.TestCase):
    def test_marshal_payload(self) -> None:
        payload = encrypt(marshal_string(CREDENTIALS_YAML))
        self.assertEqual(decrypt_credentials(payload, MASTER_KEY), CREDENTIALS_YAML)

    def test_long_marshal_payload(self) -> None:
        text = "comment: " + "x" * 400 + "\n"
        payload = encrypt(marshal_string(text))
        self.assertEqual(decrypt_credentials(payload, MASTER_KEY), text)

    def test_json_payload(self) -> None:
        payload = encrypt(json.dumps(CREDENTIALS_YAML).encode("utf-8"))
        self.assertEqual(decrypt_credentials(payload, MASTER_KEY), CREDENTIALS_YAML)

    def test_raw_payload(self) -> None:
        payload = encrypt(CREDENTIALS_YAML.encode("utf-8"))
        self.assertEqual(decrypt_credentials(payload, MASTER_KEY), CREDENTIALS_YAML)

    def test_wrong_key(self) -> None:
        payload = encrypt(marshal_string(CREDENTIALS_YAML))
        with self.assertRaises(SecretsError):
            decrypt_credentials(payload, OTHER_KEY)

    def test_key_length_message(self) -> None:
        payload = encrypt(marshal_string(CREDENTIALS_YAML))
        with self.assertRaises(SecretsError) as ctx:
            decrypt_credentials(payload, "0011")
        self.assertEqual(ctx.exception.message, "Master key has 2 bytes; expected 16, 24 or 32")

    def test_malformed_inputs(self) -> None:
        payload = encrypt(marshal_string(CREDENTIALS_YAML))
        cases = [
            (payload, "not-hex"),
            (payload, "0011"),
            ("only--two", MASTER_KEY),
            ("!!--!!--!!", MASTER_KEY),
        ]
        for data, key in cases:
            with self.subTest(data=data[:12], key=key):
                with self.assertRaises(SecretsError):
                    decrypt_credentials(data, key)


class LocalSecretsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        (self.root / "config").mkdir()

    def write_credentials(self, text: str, key: str = MASTER_KEY) -> None:
        (self.root / "config" / "credentials.yml.enc").write_text(
            encrypt(marshal_string(text), key), encoding="utf-8"
        )

    def write_master_key(self, key: str = MASTER_KEY) -> None:
        (self.root / "config" / "master.key").write_text(key + "\n", encoding="utf-8")

    def test_database_credentials_from_key_file(self) -> None:
        self.write_master_key()
        self.write_credentials(CREDENTIALS_YAML)
        secrets = LocalSecrets(root=self.root, environ={})

        self.assertTrue(secrets.has_master_key_file())
        creds = secrets.database_credentials()
        self.assertEqual(creds.database, "blog_production")
        self.assertEqual(creds.username, "blog")
        self.assertEqual(creds.password, "s3cr'et")
        self.assertNotIn("s3cr", repr(creds))

    def test_environment_key_wins_over_file(self) -> None:
        self.write_master_key(OTHER_KEY)
        self.write_credentials(CREDENTIALS_YAML)
        secrets = LocalSecrets(root=self.root, environ={"RAILS_MASTER_KEY": MASTER_KEY})

        self.assertEqual(secrets.master_key(), MASTER_KEY)
        self.assertEqual(secrets.database_credentials().username, "blog")

    def test_missing_master_key(self) -> None:
        self.write_credentials(CREDENTIALS_YAML)
        secrets = LocalSecrets(root=self.root, environ={})

        self.assertFalse(secrets.has_master_key_file())
        with self.assertRaises(SecretsError):
            secrets.database_credentials()

    def test_missing_credentials_file(self) -> None:
        self.write_master_key()
        with self.assertRaises(SecretsError):
            LocalSecrets(root=self.root, environ={}).database_credentials()

    def test_missing_mysql_section(self) -> None:
        self.write_master_key()
        self.write_credentials("secret_key_base: abc123\n")
        with self.assertRaises(SecretsError):
            LocalSecrets(root=self.root, environ={}).database_credentials()

    def test_binary_master_key_file(self) -> None:
        (self.root / "config" / "master.key").write_bytes(b"\xff\xfe\x00bad")
        self.write_credentials(CREDENTIALS_YAML)
        with self.assertRaises(SecretsError):
            LocalSecrets(root=self.root, environ={}).database_credentials()

    def test_binary_credentials_file(self) -> None:
        (self.root / "config" / "credentials.yml.enc").write_bytes(b"\xff\xfe\x00bad")
        secrets = LocalSecrets(root=self.root, environ={"RAILS_MASTER_KEY": MASTER_KEY})
        with self.assertRaises(SecretsError):
            secrets.database_credentials()

    def test_plaintext_that_is_not_utf8(self) -> None:
        payload = encrypt(b"\x04\x08I\"" + marshal_long(2) + b"\xff\xfe" + b"\x06:\x06ET")
        with self.assertRaises(SecretsError):
            decrypt_credentials(payload, MASTER_KEY)

    def test_missing_mysql_field(self) -> None:
        self.write_master_key()
        self.write_credentials("mysql:\n  database: blog\n  username: blog\n")
        with self.assertRaises(SecretsError) as ctx:
            LocalSecrets(root=self.root, environ={}).database_credentials()
        self.assertIn("mysql.password", ctx.exception.message)


if __name__ == "__main__":
    unittest.main()
