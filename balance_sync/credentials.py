"""
============================================================================
Balance Sync v1.0.0
Credential Store - Per-Institution API Key/Secret Storage
============================================================================

Entries are addressed the same way the mobile keychain addressed them:

    apiKey institutionId: <id>
    secret institutionId: <id>

SECURITY:
    - Secrets are never logged
    - API keys appear in logs only in redacted form

ERROR CODES:
    - PLNX-SEC-001: No stored credentials for an institution

============================================================================
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from dotenv import load_dotenv

from balance_sync.models import Credentials

logger = logging.getLogger(__name__)

API_KEY_ENV = "POLONIEX_API_KEY"
API_SECRET_ENV = "POLONIEX_API_SECRET"


def api_key_entry(institution_id: int) -> str:
    return f"apiKey institutionId: {institution_id}"


def secret_entry(institution_id: int) -> str:
    return f"secret institutionId: {institution_id}"


class CredentialStore(ABC):
    """Abstract secure storage for institution credentials."""

    @abstractmethod
    def get(self, institution_id: int) -> Optional[Credentials]:
        """Return stored credentials, or None when nothing is stored."""

    @abstractmethod
    def set(self, institution_id: int, credentials: Credentials) -> None:
        """Store (or replace) credentials for an institution."""

    @abstractmethod
    def delete(self, institution_id: int) -> bool:
        """Remove credentials; True if something was removed."""


class InMemoryCredentialStore(CredentialStore):
    """
    Process-local credential store.

    Holds raw entries keyed by their keychain-style names so tests can assert
    on the exact addressing.
    """

    def __init__(self):
        self._entries: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, institution_id: int) -> Optional[Credentials]:
        with self._lock:
            api_key = self._entries.get(api_key_entry(institution_id))
            secret = self._entries.get(secret_entry(institution_id))
        if not api_key or not secret:
            return None
        return Credentials(api_key=api_key, secret=secret)

    def set(self, institution_id: int, credentials: Credentials) -> None:
        with self._lock:
            self._entries[api_key_entry(institution_id)] = credentials.api_key
            self._entries[secret_entry(institution_id)] = credentials.secret
        logger.info(
            f"[CRED] Credentials stored | institution_id={institution_id} | "
            f"api_key={credentials.redacted_key()}"
        )

    def delete(self, institution_id: int) -> bool:
        with self._lock:
            removed = self._entries.pop(api_key_entry(institution_id), None)
            self._entries.pop(secret_entry(institution_id), None)
        return removed is not None

    def entry(self, name: str) -> Optional[str]:
        """Raw entry lookup by keychain-style name."""
        with self._lock:
            return self._entries.get(name)


class EnvCredentialStore(InMemoryCredentialStore):
    """
    Credential store backed by POLONIEX_API_KEY / POLONIEX_API_SECRET.

    Credentials stored with set() take precedence; otherwise every institution
    resolves to the environment pair (a single linked account per process).
    """

    def __init__(self, load_env: bool = True):
        super().__init__()
        if load_env:
            load_dotenv()

    @staticmethod
    def from_environment() -> Optional[Credentials]:
        """
        Read the environment pair.

        Returns:
            Credentials, or None when either variable is unset

        Raises:
            MissingCredentialsError: If a variable is set but blank (PLNX-SEC-001)
        """
        api_key = os.getenv(API_KEY_ENV)
        secret = os.getenv(API_SECRET_ENV)
        if api_key is None or secret is None:
            return None
        return Credentials(api_key=api_key, secret=secret)

    def get(self, institution_id: int) -> Optional[Credentials]:
        stored = super().get(institution_id)
        if stored is not None:
            return stored
        return self.from_environment()
