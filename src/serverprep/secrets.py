"""Local application secrets.

The application keeps its database credentials in an encrypted YAML document
(``config/credentials.yml.enc``) unlocked by a hex master key that comes from
``RAILS_MASTER_KEY`` or ``config/master.key``. The file holds three
``--``-separated base64 fields: ciphertext, IV and GCM auth tag.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import SecretsError

logger = logging.getLogger(__name__)

MASTER_KEY_ENV = "RAILS_MASTER_KEY"
MASTER_KEY_FILE = "config/master.key"
CREDENTIALS_FILE = "config/credentials.yml.enc"


@dataclass(frozen=True)
class DatabaseCredentials:
    database: str
    username: str
    password: str = field(repr=False)


@dataclass
class LocalSecrets:
    """Presence checks and decryption for the secrets of one local app root."""

    root: Path = field(default_factory=Path.cwd)
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)

    @property
    def master_key_path(self) -> Path:
        return self.root / MASTER_KEY_FILE

    @property
    def credentials_path(self) -> Path:
        return self.root / CREDENTIALS_FILE

    def has_master_key_file(self) -> bool:
        return self.master_key_path.is_file()

    def master_key(self) -> str:
        key = self.environ.get(MASTER_KEY_ENV)
        if key:
            return key.strip()
        if self.has_master_key_file():
            return _read_text(self.master_key_path).strip()
        raise SecretsError(
            f"Master key not found in ${MASTER_KEY_ENV} or {self.master_key_path}"
        )

    def read_credentials(self) -> Mapping[str, Any]:
        """Decrypt and parse the credentials document."""
        if not self.credentials_path.is_file():
            raise SecretsError(f"Encrypted credentials not found: {self.credentials_path}")
        key = self.master_key()
        payload = _read_text(self.credentials_path).strip()
        text = decrypt_credentials(payload, key)
        try:
            document = yaml.safe_load(text) or {}
        except yaml.YAMLError as exc:
            raise SecretsError(f"Decrypted credentials are not valid YAML: {exc}") from exc
        if not isinstance(document, dict):
            raise SecretsError("Decrypted credentials are not a mapping")
        return document

    def database_credentials(self) -> DatabaseCredentials:
        section = self.read_credentials().get("mysql")
        if not isinstance(section, dict):
            raise SecretsError("Credentials have no `mysql` section")
        values = {}
        for name in ("database", "username", "password"):
            value = section.get(name)
            if value is None or str(value) == "":
                raise SecretsError(f"Credentials are missing mysql.{name}")
            values[name] = str(value)
        return DatabaseCredentials(**values)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SecretsError(f"Could not read {path}: {exc}") from exc


def decrypt_credentials(payload: str, master_key: str) -> str:
    """Decrypt an ``data--iv--tag`` payload with the hex master key."""
    try:
        key = bytes.fromhex(master_key)
    except ValueError as exc:
        raise SecretsError("Master key is not a hex string") from exc
    if len(key) not in (16, 24, 32):
        raise SecretsError(f"Master key has {len(key)} bytes; expected 16, 24 or 32")

    parts = payload.split("--")
    if len(parts) != 3:
        raise SecretsError("Encrypted credentials are malformed")
    try:
        ciphertext, iv, tag = (base64.b64decode(part, validate=True) for part in parts)
    except (binascii.Error, ValueError) as exc:
        raise SecretsError("Encrypted credentials are not valid base64") from exc

    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as exc:
        raise SecretsError("Could not decrypt credentials: wrong master key?") from exc
    try:
        return _deserialize(plaintext)
    except UnicodeDecodeError as exc:
        raise SecretsError("Decrypted credentials are not UTF-8 text") from exc


def _deserialize(plaintext: bytes) -> str:
    """The plaintext is a serialized string: Ruby Marshal, JSON, or raw text."""
    if plaintext[:2] == b"\x04\x08":
        return _load_marshal_string(plaintext)
    if plaintext[:1] == b'"':
        try:
            value = json.loads(plaintext.decode("utf-8"))
        except ValueError:
            value = None
        if isinstance(value, str):
            return value
    return plaintext.decode("utf-8")


def _load_marshal_string(data: bytes) -> str:
    """Read the single String object of a Ruby ``Marshal.dump(str)``."""
    reader = _MarshalReader(data)
    reader.expect(b"\x04\x08")
    if reader.peek() == b"I":
        # String with instance variables (the encoding).
        reader.read(1)
    reader.expect(b'"')
    length = reader.read_long()
    return reader.read(length).decode("utf-8")


class _MarshalReader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def peek(self) -> bytes:
        return self._data[self._pos:self._pos + 1]

    def read(self, size: int) -> bytes:
        if size < 0 or self._pos + size > len(self._data):
            raise SecretsError("Decrypted credentials are truncated")
        chunk = self._data[self._pos:self._pos + size]
        self._pos += size
        return chunk

    def expect(self, marker: bytes) -> None:
        if self.read(len(marker)) != marker:
            raise SecretsError("Decrypted credentials are not a serialized string")

    def read_long(self) -> int:
        c = int.from_bytes(self.read(1), "little", signed=True)
        if c == 0:
            return 0
        if c > 4:
            return c - 5
        if c < -4:
            return c + 5
        if c > 0:
            return int.from_bytes(self.read(c), "little")
        raw = self.read(-c)
        return int.from_bytes(raw, "little") - (1 << (8 * -c))

