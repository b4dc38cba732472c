"""
Unit tests for authentication.
"""

from datetime import timedelta

import pytest
from fastapi import HTTPException
from jose import jwt

from invite_jobs.api.auth import (
    create_access_token,
    decode_token,
    validate_api_key,
)
from invite_jobs.config import Settings


class TestAuth:
    """Tests for authentication utilities."""

    def test_token_subject_is_owner(self):
        """The owner id travels as the JWT subject."""
        token = create_access_token(owner_id="user-1")

        claims = jwt.get_unverified_claims(token)
        assert claims["sub"] == "user-1"

    def test_decode_valid_token(self):
        token = create_access_token(owner_id="user-1")

        token_data = decode_token(token)

        assert token_data.owner_id == "user-1"
        assert token_data.exp is not None

    def test_decode_expired_token(self):
        """Test decoding an expired token raises error."""
        token = create_access_token(
            owner_id="user-1",
            expires_delta=timedelta(hours=-1),
        )

        with pytest.raises(HTTPException) as exc_info:
            decode_token(token)

        assert exc_info.value.status_code == 401

    def test_decode_invalid_token(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_token("invalid-token")

        assert exc_info.value.status_code == 401

    def test_decode_token_without_subject(self):
        token = jwt.encode({"exp": 4102444800}, "test-secret-key", algorithm="HS256")

        with pytest.raises(HTTPException) as exc_info:
            decode_token(token)

        assert exc_info.value.status_code == 401
        assert "subject" in exc_info.value.detail

    def test_validate_api_key_without_configured_key(self):
        """Any non-empty key is accepted when API_KEY is unset."""
        assert validate_api_key("any-key", "user-1") is True

    def test_validate_api_key_empty(self):
        assert validate_api_key("", "user-1") is False
        assert validate_api_key("key", "") is False
        assert validate_api_key("", "") is False

    def test_validate_api_key_against_configured_key(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(
            "invite_jobs.api.auth.get_settings",
            lambda: Settings(api_key="expected-key"),
        )

        assert validate_api_key("expected-key", "user-1") is True
        assert validate_api_key("other-key", "user-1") is False
