import pytest

from windscribe_port_sync.infrastructure.adapters.windscribe.signing import generate_totp, new_nonce, sign_token

RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"  # b"12345678901234567890"


def test_signature_is_sha256_of_token_and_secret():
    assert sign_token("ab", "c") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_signature_is_deterministic_and_input_sensitive():
    assert sign_token("token", "secret") == sign_token("token", "secret")
    assert sign_token("token", "secret") != sign_token("tokem", "secret")
    assert sign_token("token", "secret") != sign_token("token", "secreT")


@pytest.mark.parametrize(
    "timestamp, code",
    [(59, "287082"), (1111111109, "081804"), (1234567890, "005924")],
)
def test_totp_rfc6238_vectors(timestamp, code):
    assert generate_totp(RFC_SECRET, timestamp) == code


def test_totp_accepts_lowercase_and_spaces():
    assert generate_totp("gezd gnbv gy3t qojq gezd gnbv gy3t qojq", 59) == "287082"


def test_totp_rejects_invalid_secret():
    with pytest.raises(ValueError):
        generate_totp("not-base32!", 59)


def test_nonce_is_fresh():
    assert new_nonce() != new_nonce()
