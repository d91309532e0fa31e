"""Connection URLs for Postgres and Valkey.

Each URL comes from its environment variable when set (local development),
otherwise from Vault KV v2 under gifty/<name>, read once per process through
an AppRole login.
"""

import logging
import os
import threading

import hvac
from hvac.exceptions import Forbidden, InvalidPath, Unauthorized

logger = logging.getLogger(__name__)

SECRET_PREFIX = "gifty"

# name -> (environment override, secret path under gifty/, field)
CONNECTION_SECRETS = {
    "database": ("DATABASE_URL", "database", "url"),
    "valkey": ("VALKEY_URL", "valkey", "url"),
}

_vault: "VaultClient | None" = None
_resolved: dict[str, str] = {}
_lock = threading.Lock()


class VaultError(Exception):
    """A required secret could not be read. The service cannot start without it."""


class VaultClient:
    """AppRole-authenticated reader for secrets under gifty/."""

    def __init__(
        self,
        addr: str | None = None,
        role_id: str | None = None,
        secret_id: str | None = None,
        namespace: str | None = None,
    ):
        addr = addr or os.getenv("VAULT_ADDR")
        role_id = role_id or os.getenv("VAULT_ROLE_ID")
        secret_id = secret_id or os.getenv("VAULT_SECRET_ID")
        namespace = namespace or os.getenv("VAULT_NAMESPACE")

        missing = [
            name
            for name, value in (
                ("VAULT_ADDR", addr),
                ("VAULT_ROLE_ID", role_id),
                ("VAULT_SECRET_ID", secret_id),
            )
            if not value
        ]
        if missing:
            raise VaultError(f"Vault is not configured, missing {', '.join(missing)}")

        self.client = hvac.Client(url=addr, namespace=namespace)
        try:
            login = self.client.auth.approle.login(role_id=role_id, secret_id=secret_id)
        except Exception as e:
            raise VaultError(f"Vault AppRole login failed: {e}") from e

        self.client.token = login["auth"]["client_token"]
        logger.info(f"Vault AppRole login succeeded: {addr}")

    def read(self, path: str, field: str) -> str:
        """
        One field of the KV v2 secret at gifty/<path>.

        Raises:
            VaultError: Secret missing, access denied, or field absent
        """
        full_path = f"{SECRET_PREFIX}/{path}"
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath as e:
            raise VaultError(f"No secret at {full_path}") from e
        except (Unauthorized, Forbidden) as e:
            raise VaultError(f"Access denied to {full_path}: {e}") from e

        data = response["data"]["data"]
        if field not in data:
            raise VaultError(f"Secret {full_path} has no field '{field}'")
        return data[field]


def resolve_connection_url(name: str) -> str:
    """
    URL for a name in CONNECTION_SECRETS.

    The environment override is read on every call; a Vault value is read
    once and reused for the life of the process.
    """
    env_var, path, field = CONNECTION_SECRETS[name]
    override = os.getenv(env_var)
    if override:
        return override

    global _vault
    with _lock:
        if name not in _resolved:
            if _vault is None:
                _vault = VaultClient()
            _resolved[name] = _vault.read(path, field)
            logger.info(f"Resolved {name} URL from Vault")
        return _resolved[name]


def get_database_url() -> str:
    return resolve_connection_url("database")


def get_valkey_url() -> str:
    return resolve_connection_url("valkey")
