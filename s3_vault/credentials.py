from __future__ import annotations
"""Saved connection settings; the secret key lives in the OS keychain."""
from dataclasses import dataclass
import json
import logging
from pathlib import Path
from typing import Optional

import keyring
from keyring.errors import KeyringError

LOGGER = logging.getLogger(__name__)

KEYCHAIN_ACCOUNT = "default"


@dataclass
class ConnectionConfig:
    """Everything needed to open a session against one bucket."""

    access_key_id: str
    secret_access_key: str
    region: str
    bucket_name: str
    endpoint_url: Optional[str] = None


class KeychainStore:
    """Encapsulates OS keychain access for secrets."""

    def __init__(self, service_name: str = "s3-vault"):
        self._service_name = service_name

    def get_secret(self, account: str) -> str:
        try:
            return keyring.get_password(self._service_name, account) or ""
        except KeyringError:
            LOGGER.warning("Unable to read secret from keychain")
            return ""

    def set_secret(self, account: str, secret: str) -> None:
        if not secret:
            self.delete_secret(account)
            return
        try:
            keyring.set_password(self._service_name, account, secret)
        except KeyringError:
            LOGGER.warning("Unable to store secret in keychain")

    def delete_secret(self, account: str) -> None:
        try:
            keyring.delete_password(self._service_name, account)
        except KeyringError:
            return


class CredentialStore:
    """JSON-backed store for the last successful connection."""

    def __init__(self, storage_path: str | Path | None = None, keychain: KeychainStore | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".s3vault_connection.json"
        self._path = Path(storage_path)
        self._keychain = keychain or KeychainStore()

    def load(self) -> ConnectionConfig | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None
        if not isinstance(data, dict):
            return None
        try:
            access_key_id = data["access_key_id"]
            bucket_name = data["bucket_name"]
        except KeyError:
            return None
        secret = data.get("secret_access_key", "")
        if secret:
            # Migrate a plaintext secret into the keychain.
            self._keychain.set_secret(KEYCHAIN_ACCOUNT, secret)
            data.pop("secret_access_key")
            self._write_data(data)
        else:
            secret = self._keychain.get_secret(KEYCHAIN_ACCOUNT)
        return ConnectionConfig(
            access_key_id=access_key_id,
            secret_access_key=secret,
            region=data.get("region") or "",
            bucket_name=bucket_name,
            endpoint_url=data.get("endpoint_url") or None,
        )

    def save(self, config: ConnectionConfig) -> None:
        self._keychain.set_secret(KEYCHAIN_ACCOUNT, config.secret_access_key)
        self._write_data(
            {
                "access_key_id": config.access_key_id,
                "region": config.region,
                "bucket_name": config.bucket_name,
                "endpoint_url": config.endpoint_url,
            }
        )

    def clear(self) -> None:
        self._keychain.delete_secret(KEYCHAIN_ACCOUNT)
        try:
            self._path.unlink()
        except FileNotFoundError:
            return

    def _write_data(self, data: dict[str, object]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
