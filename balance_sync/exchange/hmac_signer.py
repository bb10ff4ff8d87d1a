# ============================================================================
# Balance Sync v1.0.0
# HMAC Signer - Poloniex Trading API Request Signing
# ============================================================================
#
# Purpose: Builds the canonical POST body for a trading command and signs it
#          using HMAC-SHA512
#
# MANDATE:
#   - Secrets NEVER appear in logs (key redacted, signature never logged)
#   - Nonce strictly increasing per API key, even across rapid calls
#   - Signed string and transmitted body are the same string
#
# Poloniex Signature Format:
#   body = urlencode(params + [("nonce", nonce)])
#   signature = HMAC-SHA512(secret, body)
#
# ============================================================================

import hmac
import hashlib
import os
import time
import threading
import logging
from typing import Callable, Dict, Mapping, Optional
from urllib.parse import urlencode

from balance_sync.models import Credentials, SignedRequest

logger = logging.getLogger(__name__)


# Clock resolution used for nonce values: 1/10000 of a second
NONCE_CLOCK_MULTIPLIER = 10000


def clock_nonce() -> int:
    """Current time at sub-millisecond granularity, cast to an integer."""
    return int(time.time() * NONCE_CLOCK_MULTIPLIER)


def sign_body(body: str, secret: str) -> str:
    """
    Compute the hex HMAC-SHA512 digest of a request body.

    Args:
        body: Exact POST body (URL-encoded)
        secret: Shared API secret

    Returns:
        Lowercase hex digest (128 characters)
    """
    return hmac.new(
        secret.encode('utf-8'),
        body.encode('utf-8'),
        hashlib.sha512
    ).hexdigest()


# ============================================================================
# Nonce Generator
# ============================================================================

class NonceGenerator:
    """
    Thread-Safe Strictly Increasing Nonce Source.

    Issues ``max(clock_value, last + 1)`` under a mutex lock, so consecutive
    nonces are strictly increasing even when the clock does not advance
    between calls or is set backwards.

    When ``state_path`` is given, the last issued nonce is persisted after
    every issue and reloaded on construction, so nonces stay increasing across
    process restarts.

    Example Usage:
        generator = NonceGenerator.for_key(credentials.api_key)
        nonce = generator.next_nonce()
    """

    _registry: Dict[str, "NonceGenerator"] = {}
    _registry_lock = threading.Lock()

    def __init__(
        self,
        clock: Callable[[], int] = clock_nonce,
        state_path: Optional[str] = None
    ):
        self._clock = clock
        self._state_path = state_path
        self._lock = threading.Lock()
        self._last = self._load_state()

    @classmethod
    def for_key(
        cls,
        api_key: str,
        state_dir: Optional[str] = None
    ) -> "NonceGenerator":
        """
        Get the process-wide generator for an API key.

        Requests signed with the same credentials share one generator, which
        serializes nonce issuance between concurrent clients. With
        ``state_dir`` the last nonce is kept in a per-key file named after a
        hash of the key.
        """
        state_path = None
        if state_dir:
            os.makedirs(state_dir, exist_ok=True)
            digest = hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]
            state_path = os.path.join(state_dir, f"nonce-{digest}")

        with cls._registry_lock:
            generator = cls._registry.get(api_key)
            if generator is None:
                generator = cls(state_path=state_path)
                cls._registry[api_key] = generator
            elif state_path:
                generator.attach_state(state_path)
            return generator

    def attach_state(self, state_path: str) -> None:
        """
        Start persisting to ``state_path``.

        The stored nonce is merged with the one already issued in this
        process, so the sequence keeps increasing.
        """
        with self._lock:
            if self._state_path == state_path:
                return
            if self._state_path:
                logger.warning(
                    f"[PLNX-SIGN] Nonce state moved | from={self._state_path} | "
                    f"to={state_path}"
                )
            self._state_path = state_path
            self._last = max(self._last, self._load_state())
            if self._last:
                self._save_state(self._last)

    def next_nonce(self) -> int:
        """
        Issue the next nonce.

        Returns:
            Integer strictly greater than every nonce previously issued
        """
        with self._lock:
            nonce = max(self._clock(), self._last + 1)
            self._last = nonce
            self._save_state(nonce)
            return nonce

    @property
    def last_nonce(self) -> int:
        with self._lock:
            return self._last

    def _load_state(self) -> int:
        if not self._state_path or not os.path.exists(self._state_path):
            return 0
        try:
            with open(self._state_path, 'r', encoding='utf-8') as handle:
                return int(handle.read().strip() or 0)
        except (OSError, ValueError) as e:
            logger.warning(
                f"[PLNX-SIGN] Nonce state unreadable, starting from clock | "
                f"path={self._state_path} | error={e}"
            )
            return 0

    def _save_state(self, nonce: int) -> None:
        if not self._state_path:
            return
        tmp_path = f"{self._state_path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as handle:
            handle.write(str(nonce))
        os.replace(tmp_path, self._state_path)


# ============================================================================
# Poloniex Signer
# ============================================================================

class PoloniexSigner:
    """
    HMAC-SHA512 Request Signer for the Poloniex trading API.

    Side Effects: Advances the nonce generator on every sign() call

    Example Usage:
        signer = PoloniexSigner(credentials)
        signed = signer.sign({"command": "returnCompleteBalances"})
        headers = signer.headers(signed)
        session.post(url, data=signed.body, headers=headers)
    """

    HEADER_KEY = 'Key'
    HEADER_SIGN = 'Sign'

    def __init__(
        self,
        credentials: Credentials,
        nonce_generator: Optional[NonceGenerator] = None,
        correlation_id: Optional[str] = None
    ):
        """
        Initialize signer.

        Args:
            credentials: API key/secret pair
            nonce_generator: Nonce source (default: shared generator for the key)
            correlation_id: Audit trail identifier
        """
        self._credentials = credentials
        self.nonce_generator = nonce_generator or NonceGenerator.for_key(
            credentials.api_key
        )
        self.correlation_id = correlation_id

        logger.debug(
            f"[PLNX-SIGN] Signer initialized | "
            f"api_key={credentials.redacted_key()} | correlation_id={correlation_id}"
        )

    def sign(self, params: Mapping[str, str]) -> SignedRequest:
        """
        Serialize parameters with a fresh nonce and sign the result.

        Args:
            params: Command parameters (must include "command")

        Returns:
            SignedRequest whose body is the exact POST body
        """
        nonce = self.nonce_generator.next_nonce()

        items = [(str(key), str(value)) for key, value in params.items() if key != 'nonce']
        items.append(('nonce', str(nonce)))
        body = urlencode(items)

        signature = sign_body(body, self._credentials.secret)

        logger.debug(
            f"[PLNX-SIGN] Request signed | "
            f"command={params.get('command')} | nonce={nonce} | "
            f"signature=[REDACTED] | correlation_id={self.correlation_id}"
        )

        return SignedRequest(body=body, signature=signature, nonce=nonce)

    def headers(self, signed: SignedRequest) -> Dict[str, str]:
        """
        Authentication headers for a signed request.

        Returns:
            Dict with "Key" (API key) and "Sign" (hex signature)
        """
        return {
            self.HEADER_KEY: self._credentials.api_key,
            self.HEADER_SIGN: signed.signature,
        }

    def get_redacted_key(self) -> str:
        """Redacted API key for log lines."""
        return self._credentials.redacted_key()
