"""
Tests for the token/secret codec and CSRF validation.

Run with: pytest tests/test_security.py -v
"""

from datetime import timedelta

import pytest
from jose import jwt

from app.core.csrf import generate_secret, validate_csrf
from app.core.exceptions import CsrfError
from app.core.security import (
    ExpiredTokenError,
    InvalidTokenError,
    hash_csrf_secret,
    hash_password,
    hash_reset_token,
    sign_access_token,
    sign_refresh_token,
    verify_access_token,
    verify_password,
    verify_refresh_token,
)


# ============================================
# Password Hashing
# ============================================

class TestPasswordHashing:
    """Salted bcrypt hashes."""

    def test_hash_and_verify(self):
        hashed = hash_password("Aa1!aaaa")
        assert hashed != "Aa1!aaaa"
        assert verify_password("Aa1!aaaa", hashed)
        assert not verify_password("Aa1!aaab", hashed)

    def test_same_password_hashes_differently(self):
        assert hash_password("Aa1!aaaa") != hash_password("Aa1!aaaa")


# ============================================
# JWT Codec
# ============================================

class TestJwtCodec:
    """Signing and verification of access and refresh tokens."""

    def test_access_token_roundtrip(self):
        token = sign_access_token("user-1", "Ada")
        claims = verify_access_token(token)
        assert claims.user_id == "user-1"
        assert claims.name == "Ada"

    def test_refresh_token_roundtrip(self):
        token = sign_refresh_token("user-1")
        assert verify_refresh_token(token).user_id == "user-1"

    def test_tokens_issued_back_to_back_differ(self):
        assert sign_refresh_token("user-1") != sign_refresh_token("user-1")
        assert sign_access_token("user-1", "Ada") != sign_access_token("user-1", "Ada")

    def test_expired_access_token(self):
        token = sign_access_token("user-1", "Ada", expires_delta=timedelta(seconds=-5))
        with pytest.raises(ExpiredTokenError):
            verify_access_token(token)

    def test_expired_refresh_token(self):
        token = sign_refresh_token("user-1", expires_delta=timedelta(seconds=-5))
        with pytest.raises(ExpiredTokenError):
            verify_refresh_token(token)

    def test_refresh_token_never_accepted_as_access_token(self):
        with pytest.raises(InvalidTokenError):
            verify_access_token(sign_refresh_token("user-1"))

    def test_access_token_never_accepted_as_refresh_token(self):
        with pytest.raises(InvalidTokenError):
            verify_refresh_token(sign_access_token("user-1", "Ada"))

    def test_token_signed_with_other_key_rejected(self):
        forged = jwt.encode(
            {"sub": "user-1", "type": "access", "name": "Ada"},
            "not-the-server-key",
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            verify_access_token(forged)

    def test_swapped_payload_rejected(self):
        head, _, signature = sign_access_token("user-1", "Ada").split(".")
        _, other_payload, _ = sign_access_token("user-2", "Eve").split(".")
        with pytest.raises(InvalidTokenError):
            verify_access_token(".".join([head, other_payload, signature]))

    @pytest.mark.parametrize("garbage", ["", "not-a-jwt", "a.b.c"])
    def test_garbage_rejected(self, garbage):
        with pytest.raises(InvalidTokenError):
            verify_access_token(garbage)
        with pytest.raises(InvalidTokenError):
            verify_refresh_token(garbage)


# ============================================
# Digests
# ============================================

class TestDigests:

    def test_csrf_digest_is_deterministic_hex(self):
        secret = generate_secret()
        assert len(secret) == 64
        assert hash_csrf_secret(secret) == hash_csrf_secret(secret)
        assert len(hash_csrf_secret(secret)) == 64

    def test_one_byte_change_changes_digest(self):
        secret = "a" * 64
        assert hash_csrf_secret(secret) != hash_csrf_secret("b" + secret[1:])

    def test_reset_digest_hides_token(self):
        token = "f" * 64
        assert hash_reset_token(token) != token


# ============================================
# CSRF Validation
# ============================================

class TestCsrfValidation:

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS", "get"])
    def test_safe_methods_pass_without_pair(self, method):
        validate_csrf(method, None, None)

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    def test_matching_pair_passes(self, method):
        secret = generate_secret()
        validate_csrf(method, secret, hash_csrf_secret(secret))

    def test_missing_secret(self):
        with pytest.raises(CsrfError) as exc:
            validate_csrf("POST", None, "token")
        assert exc.value.code == "CSRF_SECRET_MISSING"
        assert exc.value.status_code == 403

    def test_missing_token(self):
        with pytest.raises(CsrfError) as exc:
            validate_csrf("POST", generate_secret(), None)
        assert exc.value.code == "CSRF_TOKEN_MISSING"

    def test_mismatch(self):
        with pytest.raises(CsrfError) as exc:
            validate_csrf("DELETE", generate_secret(), hash_csrf_secret(generate_secret()))
        assert exc.value.code == "CSRF_TOKEN_MISMATCH"

    def test_raw_secret_is_not_a_valid_token(self):
        secret = generate_secret()
        with pytest.raises(CsrfError):
            validate_csrf("POST", secret, secret)

    def test_non_ascii_token_is_a_mismatch(self):
        with pytest.raises(CsrfError) as exc:
            validate_csrf("POST", generate_secret(), "é" * 64)
        assert exc.value.code == "CSRF_TOKEN_MISMATCH"
