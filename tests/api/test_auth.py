"""Tests for bearer token decoding and startup config validation."""

import time

import jwt as pyjwt
import pytest
from fastapi import HTTPException

from coursehub.core.auth import decode_access_token
from coursehub.core.config import Settings, get_settings

pytestmark = pytest.mark.unit


def test_decodes_user_and_role(make_token):
    user = decode_access_token(make_token("user-7", role="admin"))

    assert user.user_id == "user-7"
    assert user.role == "ADMIN"
    assert user.is_admin


def test_role_defaults_to_user():
    settings = get_settings()
    token = pyjwt.encode({"sub": "user-8", "exp": int(time.time()) + 60}, settings.jwt_secret, algorithm="HS256")

    user = decode_access_token(token)

    assert user.role == "USER"
    assert not user.is_admin


def test_wrong_secret_is_401():
    token = pyjwt.encode(
        {"sub": "user-1", "exp": int(time.time()) + 60},
        "some-other-secret-that-is-at-least-32-bytes",
        algorithm="HS256",
    )

    with pytest.raises(HTTPException) as exc_info:
        decode_access_token(token)
    assert exc_info.value.status_code == 401


def test_missing_exp_is_401():
    token = pyjwt.encode({"sub": "user-1"}, get_settings().jwt_secret, algorithm="HS256")

    with pytest.raises(HTTPException) as exc_info:
        decode_access_token(token)
    assert exc_info.value.status_code == 401
    assert "exp" in exc_info.value.detail


def test_validate_stripe_config_lists_missing_keys(monkeypatch):
    from coursehub import main

    monkeypatch.setattr(
        main,
        "get_settings",
        lambda: Settings(debug=False, stripe_secret_key="sk_test_x", stripe_webhook_secret="", jwt_secret=""),
    )

    with pytest.raises(RuntimeError, match="stripe_webhook_secret"):
        main.validate_stripe_config()


def test_validate_stripe_config_skipped_in_debug(monkeypatch):
    from coursehub import main

    monkeypatch.setattr(main, "get_settings", lambda: Settings(debug=True, stripe_secret_key=""))

    main.validate_stripe_config()
