import time

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi import HTTPException
from jose import jwt

from offer_dispatch.utils.email_domains import is_educational_address
from offer_dispatch.utils.security import (
    create_issuer_token,
    verify_admin_token,
    verify_request_key,
)


@pytest.fixture(scope="module")
def signing_key():
    key = ec.generate_private_key(ec.SECP256R1())
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


def test_issuer_token_is_short_lived_es256(signing_key):
    private_pem, public_pem = signing_key

    token = create_issuer_token("KEY123", "issuer-uuid", private_pem, ttl_seconds=60)

    header = jwt.get_unverified_header(token)
    assert header["alg"] == "ES256"
    assert header["kid"] == "KEY123"
    assert header["typ"] == "JWT"

    claims = jwt.decode(token, public_pem, algorithms=["ES256"], audience="appstoreconnect-v1")
    assert claims["iss"] == "issuer-uuid"
    assert claims["exp"] - claims["iat"] == 60
    assert abs(claims["iat"] - time.time()) < 5


def test_issuer_token_accepts_escaped_newlines(signing_key):
    private_pem, public_pem = signing_key

    token = create_issuer_token("KEY123", "issuer-uuid", private_pem.replace("\n", "\\n"))

    claims = jwt.decode(token, public_pem, algorithms=["ES256"], audience="appstoreconnect-v1")
    assert claims["iss"] == "issuer-uuid"


@pytest.mark.anyio
async def test_request_key_checks():
    await verify_request_key("test-request-key")

    for provided in (None, "", "wrong"):
        with pytest.raises(HTTPException) as exc:
            await verify_request_key(provided)
        assert exc.value.status_code == 401


@pytest.mark.anyio
async def test_admin_token_checks():
    await verify_admin_token("test-admin-token")

    with pytest.raises(HTTPException) as exc:
        await verify_admin_token("test-request-key")
    assert exc.value.status_code == 403


@pytest.mark.parametrize(
    "address, expected",
    [
        ("student@pku.edu.cn", True),
        ("Student@MIT.EDU", True),
        ("someone@ox.ac.uk", True),
        ("x@bupt.cn", True),
        ("someone@gmail.com", False),
        ("someone@edu.cn.example.com", False),
        ("no-at-sign.edu", False),
    ],
)
def test_educational_address(address, expected):
    suffixes = [".edu", ".edu.cn", ".ac.uk", "bupt.cn"]
    assert is_educational_address(address, suffixes) is expected
