"""
Unit Tests for Poloniex Request Signing

Tests the HMAC signer module:
- Body serialization (parameter order, nonce appended last)
- HMAC-SHA512 digest of the exact body
- Strictly increasing nonces (stalled clock, clock set backwards, restarts)
- Credential redaction in repr and headers
"""

import hashlib
import hmac
import os
import sys
import threading
from urllib.parse import parse_qsl

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from balance_sync.errors import MissingCredentialsError
from balance_sync.exchange.hmac_signer import (
    NonceGenerator,
    PoloniexSigner,
    clock_nonce,
    sign_body,
)
from balance_sync.models import Credentials


API_KEY = "ABCD-1234-EFGH-5678"
SECRET = "0123456789abcdef0123456789abcdef"


class FakeClock:
    """Clock returning a scripted sequence, repeating the last value."""

    def __init__(self, *values: int):
        self.values = list(values)

    def __call__(self) -> int:
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0]


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(api_key=API_KEY, secret=SECRET)


# =============================================================================
# Credentials
# =============================================================================

class TestCredentials:

    def test_whitespace_is_trimmed(self) -> None:
        creds = Credentials(api_key="  key-value  \n", secret="\tsecret ")
        assert creds.api_key == "key-value"
        assert creds.secret == "secret"

    @pytest.mark.parametrize("api_key,secret", [
        ("", SECRET),
        (API_KEY, ""),
        ("   ", SECRET),
        (API_KEY, "  \n"),
    ])
    def test_empty_values_rejected(self, api_key: str, secret: str) -> None:
        with pytest.raises(MissingCredentialsError) as exc_info:
            Credentials(api_key=api_key, secret=secret)
        assert exc_info.value.error_code == "PLNX-SEC-001"

    def test_secret_not_in_repr(self, credentials: Credentials) -> None:
        assert SECRET not in repr(credentials)

    def test_redacted_key(self, credentials: Credentials) -> None:
        assert credentials.redacted_key() == "ABCD...5678"

    def test_short_key_fully_redacted(self) -> None:
        assert Credentials(api_key="short", secret="s").redacted_key() == "[REDACTED]"


# =============================================================================
# Digest
# =============================================================================

class TestSignBody:

    def test_matches_hmac_sha512(self) -> None:
        body = "command=returnCompleteBalances&nonce=15000000000000"
        expected = hmac.new(SECRET.encode(), body.encode(), hashlib.sha512).hexdigest()
        assert sign_body(body, SECRET) == expected

    def test_hex_digest_length(self) -> None:
        assert len(sign_body("command=x&nonce=1", SECRET)) == 128

    def test_secret_changes_signature(self) -> None:
        body = "command=x&nonce=1"
        assert sign_body(body, SECRET) != sign_body(body, SECRET + "0")


# =============================================================================
# Nonce Generator
# =============================================================================

class TestNonceGenerator:

    def test_uses_clock_when_ahead(self) -> None:
        generator = NonceGenerator(clock=FakeClock(100, 200, 300))
        assert [generator.next_nonce() for _ in range(3)] == [100, 200, 300]

    def test_stalled_clock_still_increases(self) -> None:
        generator = NonceGenerator(clock=FakeClock(500))
        assert [generator.next_nonce() for _ in range(4)] == [500, 501, 502, 503]

    def test_clock_set_backwards(self) -> None:
        generator = NonceGenerator(clock=FakeClock(1000, 10))
        first = generator.next_nonce()
        second = generator.next_nonce()
        assert second > first

    def test_last_nonce(self) -> None:
        generator = NonceGenerator(clock=FakeClock(42))
        generator.next_nonce()
        assert generator.last_nonce == 42

    def test_clock_nonce_granularity(self) -> None:
        # 1/10000 s resolution puts present-day values above 10^13
        assert clock_nonce() > 10 ** 13

    def test_concurrent_issue_is_unique(self) -> None:
        generator = NonceGenerator(clock=FakeClock(1))
        issued = []
        lock = threading.Lock()

        def worker() -> None:
            for _ in range(200):
                nonce = generator.next_nonce()
                with lock:
                    issued.append(nonce)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(issued) == len(set(issued)) == 800

    def test_state_survives_restart(self, tmp_path) -> None:
        state_path = str(tmp_path / "nonce")
        first = NonceGenerator(clock=FakeClock(900), state_path=state_path)
        first.next_nonce()
        first.next_nonce()

        restarted = NonceGenerator(clock=FakeClock(10), state_path=state_path)
        assert restarted.last_nonce == 901
        assert restarted.next_nonce() == 902

    def test_unreadable_state_starts_from_clock(self, tmp_path) -> None:
        state_path = tmp_path / "nonce"
        state_path.write_text("not-a-number")
        generator = NonceGenerator(clock=FakeClock(77), state_path=str(state_path))
        assert generator.next_nonce() == 77

    def test_for_key_shares_generator(self) -> None:
        assert NonceGenerator.for_key("shared-key-1") is NonceGenerator.for_key("shared-key-1")
        assert NonceGenerator.for_key("shared-key-1") is not NonceGenerator.for_key("shared-key-2")

    def test_for_key_state_file_does_not_contain_key(self, tmp_path) -> None:
        state_dir = tmp_path / "state"
        generator = NonceGenerator.for_key("persisted-key-abcdef", state_dir=str(state_dir))
        generator.next_nonce()

        files = os.listdir(state_dir)
        assert len(files) == 1
        assert files[0].startswith("nonce-")
        assert "persisted-key" not in files[0]

    def test_for_key_attaches_state_to_registered_generator(self, tmp_path) -> None:
        PoloniexSigner(Credentials(api_key="late-state-key-0001", secret="s"))
        state_dir = tmp_path / "state"

        generator = NonceGenerator.for_key("late-state-key-0001", state_dir=str(state_dir))
        nonce = generator.next_nonce()

        files = os.listdir(state_dir)
        assert len(files) == 1
        assert (state_dir / files[0]).read_text() == str(nonce)

    def test_attach_state_keeps_sequence_increasing(self, tmp_path) -> None:
        state_path = tmp_path / "nonce"
        state_path.write_text("5000")
        generator = NonceGenerator(clock=FakeClock(10))
        generator.next_nonce()

        generator.attach_state(str(state_path))

        assert generator.next_nonce() == 5001
        assert state_path.read_text() == "5001"


# =============================================================================
# Signer
# =============================================================================

class TestPoloniexSigner:

    def test_body_has_params_then_nonce(self, credentials: Credentials) -> None:
        signer = PoloniexSigner(credentials, nonce_generator=NonceGenerator(clock=FakeClock(7)))
        signed = signer.sign({"command": "returnDepositsWithdrawals", "start": "0", "end": "99"})

        assert signed.body == "command=returnDepositsWithdrawals&start=0&end=99&nonce=7"
        assert signed.nonce == 7

    def test_signature_covers_exact_body(self, credentials: Credentials) -> None:
        signer = PoloniexSigner(credentials, nonce_generator=NonceGenerator(clock=FakeClock(7)))
        signed = signer.sign({"command": "returnCompleteBalances"})
        assert signed.signature == sign_body(signed.body, SECRET)

    def test_caller_nonce_is_replaced(self, credentials: Credentials) -> None:
        signer = PoloniexSigner(credentials, nonce_generator=NonceGenerator(clock=FakeClock(7)))
        signed = signer.sign({"command": "returnCompleteBalances", "nonce": "1"})
        pairs = parse_qsl(signed.body)
        assert pairs == [("command", "returnCompleteBalances"), ("nonce", "7")]

    def test_values_are_url_encoded(self, credentials: Credentials) -> None:
        signer = PoloniexSigner(credentials, nonce_generator=NonceGenerator(clock=FakeClock(7)))
        signed = signer.sign({"command": "x", "note": "a b&c"})
        assert "note=a+b%26c" in signed.body

    def test_consecutive_signatures_differ(self, credentials: Credentials) -> None:
        signer = PoloniexSigner(credentials, nonce_generator=NonceGenerator(clock=FakeClock(7)))
        first = signer.sign({"command": "returnCompleteBalances"})
        second = signer.sign({"command": "returnCompleteBalances"})
        assert second.nonce > first.nonce
        assert first.signature != second.signature

    def test_headers(self, credentials: Credentials) -> None:
        signer = PoloniexSigner(credentials, nonce_generator=NonceGenerator(clock=FakeClock(7)))
        signed = signer.sign({"command": "returnCompleteBalances"})
        assert signer.headers(signed) == {"Key": API_KEY, "Sign": signed.signature}

    def test_signature_not_in_repr(self, credentials: Credentials) -> None:
        signer = PoloniexSigner(credentials, nonce_generator=NonceGenerator(clock=FakeClock(7)))
        signed = signer.sign({"command": "returnCompleteBalances"})
        assert signed.signature not in repr(signed)

    def test_secret_never_logged(self, credentials: Credentials, caplog) -> None:
        caplog.set_level("DEBUG")
        signer = PoloniexSigner(credentials, nonce_generator=NonceGenerator(clock=FakeClock(7)))
        signed = signer.sign({"command": "returnCompleteBalances"})

        assert SECRET not in caplog.text
        assert API_KEY not in caplog.text
        assert signed.signature not in caplog.text
