"""Unit tests for store key encryption."""

import pytest

from metricsnap.core.crypto import decrypt, encrypt
from metricsnap.core.errors import DecryptionError


class TestCrypto:
    def test_decrypts_with_configured_key(self) -> None:
        secret = encrypt("shpat_123")
        assert secret.count(":") == 1
        assert decrypt(secret) == "shpat_123"

    def test_fixed_iv_is_deterministic(self) -> None:
        iv = bytes(16)
        assert encrypt("abc", iv=iv) == encrypt("abc", iv=iv)
        assert encrypt("abc", iv=iv).startswith("0" * 32 + ":")

    def test_wrong_key_fails(self) -> None:
        secret = encrypt("shpat_123", iv=bytes(16))
        with pytest.raises(DecryptionError):
            decrypt(secret, key_hex="ff" * 32)

    @pytest.mark.parametrize("secret", ["no-separator", "zz:zz", "00:"])
    def test_malformed_secret(self, secret) -> None:
        with pytest.raises(DecryptionError):
            decrypt(secret)

    def test_bad_key_length(self) -> None:
        with pytest.raises(DecryptionError, match="32 bytes"):
            decrypt("00:00", key_hex="abcd")
