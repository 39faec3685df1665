from datetime import datetime, timedelta

import pytest
from jose import jwt

from elibrary import auth
from elibrary.config import settings
from elibrary.exceptions import AuthenticationError


def test_hash_and_verify_password():
    hashed = auth.hash_password("secret1")
    assert hashed != "secret1"
    assert auth.verify_password("secret1", hashed)
    assert not auth.verify_password("secret2", hashed)


def test_hashes_are_salted():
    assert auth.hash_password("secret1") != auth.hash_password("secret1")


def test_access_token_carries_subject_and_seven_day_expiry():
    payload = auth.decode_token(auth.create_access_token("abc123"))
    assert payload["sub"] == "abc123"
    lifetime = payload["exp"] - payload["iat"]
    assert lifetime == timedelta(days=7).total_seconds()


def test_decode_rejects_expired_token():
    expired = jwt.encode(
        {"sub": "abc123", "exp": datetime.utcnow() - timedelta(minutes=1)},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    with pytest.raises(AuthenticationError):
        auth.decode_token(expired)


def test_decode_rejects_foreign_signature():
    forged = jwt.encode({"sub": "abc123"}, "another-secret", algorithm=settings.ALGORITHM)
    with pytest.raises(AuthenticationError):
        auth.decode_token(forged)


def test_protected_route_requires_token(client):
    response = client.delete("/api/books/some-id")
    assert response.status_code == 401
    assert response.json()["message"] == "Authorization token is required"


def test_protected_route_rejects_invalid_token(client):
    response = client.delete("/api/books/some-id", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


def test_token_without_subject_is_rejected(client):
    token = jwt.encode(
        {"exp": datetime.utcnow() + timedelta(days=1)},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    response = client.delete("/api/books/some-id", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
