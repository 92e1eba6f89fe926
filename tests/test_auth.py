"""
Tests de autenticación con tokens RS256 reales.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from clinicas.auth.dependencies import get_current_user
from clinicas.auth.jwt import issue_access_token, read_access_token
from clinicas.config import get_settings
from clinicas.main import app


@pytest.fixture
def rsa_keys(tmp_path, monkeypatch):
    """Par de claves temporal apuntado desde la configuración."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_path = tmp_path / "private.pem"
    public_path = tmp_path / "public.pem"
    private_path.write_bytes(private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    public_path.write_bytes(private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ))

    settings = get_settings()
    monkeypatch.setattr(settings, "JWT_PRIVATE_KEY_PATH", str(private_path))
    monkeypatch.setattr(settings, "JWT_PUBLIC_KEY_PATH", str(public_path))
    return settings


@pytest.fixture
def real_auth(client):
    """Quita el override de autenticación del cliente de test."""
    app.dependency_overrides.pop(get_current_user, None)
    return client


async def test_token_round_trip(rsa_keys, test_user):
    token = issue_access_token(test_user.id, test_user.clinic_id, "OWNER")

    claims = read_access_token(token)

    assert claims.user_id == test_user.id
    assert claims.clinic_id == test_user.clinic_id
    assert claims.role == "OWNER"
    assert claims.token_type == "access"


def test_token_without_clinic_is_rejected(rsa_keys):
    token = jwt.encode(
        {"sub": "x", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        rsa_keys.jwt_private_key,
        algorithm="RS256",
    )
    with pytest.raises(jwt.MissingRequiredClaimError):
        read_access_token(token)


async def test_request_with_valid_token(rsa_keys, real_auth, test_user):
    token = issue_access_token(test_user.id, test_user.clinic_id, "OWNER")

    response = await real_auth.get(
        "/api/v1/appointments", headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == 200
    assert response.json()["total"] == 0


async def test_request_with_invalid_token(rsa_keys, real_auth):
    response = await real_auth.get(
        "/api/v1/appointments", headers={"Authorization": "Bearer basura"}
    )
    assert response.status_code == 401


async def test_token_for_another_clinic_is_rejected(rsa_keys, real_auth, test_user):
    token = issue_access_token(test_user.id, uuid4(), "OWNER")

    response = await real_auth.get(
        "/api/v1/appointments", headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == 401


async def test_expired_token_is_rejected(rsa_keys, real_auth, test_user):
    token = issue_access_token(
        test_user.id, test_user.clinic_id, "OWNER", expires_in=timedelta(minutes=-5)
    )

    response = await real_auth.get(
        "/api/v1/appointments", headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == 401
