"""Tests for the policy engine, authentication and role checks."""

import jwt
import pytest
from fastapi import HTTPException
from starlette.requests import Request

from elpgreen import auth
from elpgreen.auth import (authenticate, create_jwt, decode_jwt, get_current_user, register_user, require_role,
                           set_user_role)
from elpgreen.policy import DEFAULT_POLICY, apply_preset, get_policy, update_policy


def make_request(token: str = None) -> Request:
    headers = [(b"authorization", f"Bearer {token}".encode())] if token else []
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


class TestPolicy:
    """Tests for runtime policy updates."""

    def test_update_clamps_and_ignores(self):
        """Test percent clamping, unknown keys and wrong types."""
        policy = update_policy({"match_rate_threshold": 150, "critical_match_rate": -5, "max_matches": 12.7,
                                "unknown_key": 1, "cnpj_cache_days": True, "default_analysis_model": "oracle"})

        assert policy["match_rate_threshold"] == 100
        assert policy["critical_match_rate"] == 0
        assert policy["max_matches"] == 12
        assert "unknown_key" not in policy
        assert policy["cnpj_cache_days"] == DEFAULT_POLICY["cnpj_cache_days"]
        assert policy["default_analysis_model"] == "local"

    def test_update_valid_values(self):
        """Test model, list and rate limit updates."""
        update_policy({"default_analysis_model": "pro", "default_jurisdictions": ["BR", "US"],
                       "rate_limit_max_requests": 5})

        assert get_policy()["default_analysis_model"] == "pro"
        assert get_policy()["default_jurisdictions"] == ["BR", "US"]
        assert get_policy()["rate_limit_max_requests"] == 5

    def test_presets(self):
        """Test presets apply on top of defaults."""
        update_policy({"classification_min_confidence_pct": 10})
        policy = apply_preset("strict_compliance")

        assert policy["match_rate_threshold"] == 60
        assert policy["max_matches"] == 25
        assert policy["cgu_cache_days"] == 0
        assert policy["classification_min_confidence_pct"] == DEFAULT_POLICY["classification_min_confidence_pct"]
        assert "name" not in policy
        assert apply_preset("fast_track")["match_rate_threshold"] == 85
        with pytest.raises(ValueError):
            apply_preset("lenient")


class TestUsers:
    """Tests for registration and login."""

    def test_first_user_is_admin(self, db):
        """Test role assignment and the stored password hash."""
        first = register_user("Owner@ELPGreen.com", "correct-horse", "Owner")
        second = register_user("ana@elpgreen.com", "battery-staple", "Ana")
        third = register_user("guest@elpgreen.com", "battery-staple", "")

        assert first["role"] == "admin"
        assert first["email"] == "owner@elpgreen.com"
        assert "passwordHash" not in first
        assert second["role"] == "viewer"
        assert (third["role"], third["name"]) == ("viewer", "guest")
        assert db["users"][0]["passwordHash"] != "correct-horse"

    def test_registration_errors(self):
        """Test duplicate, invalid email and short password."""
        register_user("ana@elpgreen.com", "battery-staple", "Ana")
        with pytest.raises(ValueError, match="already exists"):
            register_user("ANA@elpgreen.com", "battery-staple", "Ana")
        with pytest.raises(ValueError, match="email"):
            register_user("ana", "battery-staple", "Ana")
        with pytest.raises(ValueError, match="8 characters"):
            register_user("bob@elpgreen.com", "short", "Bob")
        with pytest.raises(ValueError, match="email"):
            register_user(["ana@elpgreen.com"], "battery-staple", "Ana")
        with pytest.raises(ValueError, match="8 characters"):
            register_user("bob@elpgreen.com", 12345678, "Bob")

    def test_set_user_role(self, db):
        """Test promotion is logged and bad roles or ids are refused."""
        register_user("owner@elpgreen.com", "correct-horse", "Owner")
        ana = register_user("ana@elpgreen.com", "battery-staple", "Ana")

        promoted = set_user_role(ana["id"], "editor", by="Owner")

        assert promoted["role"] == "editor"
        assert "passwordHash" not in promoted
        assert db["activity_log"][-1]["action"] == "user_role_changed"
        with pytest.raises(ValueError, match="Unknown role"):
            set_user_role(ana["id"], "root")
        with pytest.raises(ValueError, match="Unknown role"):
            set_user_role(ana["id"], ["admin"])
        with pytest.raises(KeyError):
            set_user_role("missing", "editor")

    def test_authenticate(self):
        """Test a valid login returns a decodable token."""
        register_user("ana@elpgreen.com", "battery-staple", "Ana")
        result = authenticate("ana@elpgreen.com", "battery-staple")

        payload = decode_jwt(result["token"])
        assert (payload["email"], payload["role"]) == ("ana@elpgreen.com", "admin")
        with pytest.raises(HTTPException) as exc:
            authenticate("ana@elpgreen.com", "wrong-password")
        assert exc.value.status_code == 401

    def test_invalid_token(self):
        """Test tokens signed with another secret are rejected."""
        token = jwt.encode({"sub": "u1", "email": "a@b.com", "name": "A", "role": "viewer"}, "another-secret",
                           algorithm="HS256")
        with pytest.raises(HTTPException) as exc:
            decode_jwt(token)
        assert exc.value.status_code == 401


class TestRoles:
    """Tests for request dependencies."""

    @pytest.mark.asyncio
    async def test_auth_disabled_is_local_admin(self):
        """Test the local admin stands in when auth is off."""
        user = await get_current_user(make_request())

        assert user["role"] == "admin"
        assert user["authenticated"] is False

    @pytest.mark.asyncio
    async def test_role_levels(self, monkeypatch):
        """Test viewer, editor and missing credentials with auth on."""
        monkeypatch.setattr(auth, "AUTH_ENABLED", True)
        viewer = create_jwt({"id": "v", "email": "v@x.com", "name": "V", "role": "viewer"})
        editor = create_jwt({"id": "e", "email": "e@x.com", "name": "E", "role": "editor"})

        assert (await require_role(2)(make_request(editor)))["email"] == "e@x.com"
        with pytest.raises(HTTPException) as forbidden:
            await require_role(2)(make_request(viewer))
        assert forbidden.value.status_code == 403
        with pytest.raises(HTTPException) as missing:
            await get_current_user(make_request())
        assert missing.value.detail == "Authentication required"
        with pytest.raises(HTTPException) as bad:
            await get_current_user(make_request("garbage"))
        assert bad.value.detail == "Invalid or expired token"
