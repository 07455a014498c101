"""
Shared fixtures for login gateway tests.

Provides settings for both modes, a throwaway SP certificate/key pair,
a local user list, and a fake SAML collaborator so no XML security
stack is needed.
"""

import datetime
import json
from typing import Any, Dict, Mapping, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from fastapi import APIRouter, Depends
from fastapi.testclient import TestClient

from login_gateway.auth.dependencies import require_identity
from login_gateway.auth.strategy import build_strategy
from login_gateway.config import load_settings
from login_gateway.exceptions import InvalidAssertion
from login_gateway.main import create_app
from login_gateway.models import Identity


TEST_DOMAIN = "test.uic.edu"
TEST_SECRET = "test-secret-0123456789abcdef0123456789"

TEST_USERS = [
    {
        "uid": "alice",
        "pass": "correctpw",
        "displayName": "Alice Example",
        "mail": "alice@uic.edu",
        "eduPersonAffiliation": ["member", "staff"],
    },
    {"uid": "bob", "pass": "bobpw", "displayName": "Bob Example"},
]

# Attribute bag as released by the IdP (after single values are unwrapped)
SHIB_PROFILE = {
    "urn:oid:0.9.2342.19200300.100.1.1": "jdoe",
    "urn:oid:2.16.840.1.113730.3.1.241": "Jane Doe",
    "urn:oid:0.9.2342.19200300.100.1.3": "jdoe@uic.edu",
    "urn:oid:1.3.6.1.4.1.5923.1.1.1.1": ["member", "student"],
    "urn:oid:1.3.6.1.4.1.11483.1.10": "650000000",
}


# =============================================================================
# Key Material
# =============================================================================

def generate_test_key_material():
    """Generate a self-signed certificate and RSA key (PEM)."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, TEST_DOMAIN)])
    now = datetime.datetime.now(datetime.timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(private_key, hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert_pem, key_pem


@pytest.fixture(scope="session")
def key_material(tmp_path_factory):
    """Paths to a PEM certificate and key written to a temp dir."""
    directory = tmp_path_factory.mktemp("security")
    cert_pem, key_pem = generate_test_key_material()
    cert_path = directory / "sp-cert.pem"
    key_path = directory / "sp-key.pem"
    cert_path.write_bytes(cert_pem)
    key_path.write_bytes(key_pem)
    return {"cert_path": cert_path, "key_path": key_path, "cert_pem": cert_pem.decode()}


@pytest.fixture
def users_file(tmp_path):
    path = tmp_path / "shibalike-users.json"
    path.write_text(json.dumps(TEST_USERS), encoding="utf-8")
    return path


# =============================================================================
# Settings
# =============================================================================

@pytest.fixture
def local_settings(tmp_path, users_file):
    """Settings for shibalike mode; PUBLIC_ROOT does not exist."""
    return load_settings(
        DOMAIN=TEST_DOMAIN,
        SECRET=TEST_SECRET,
        SHIBALIKE=True,
        LOCAL_USERS_PATH=users_file,
        PUBLIC_ROOT=tmp_path / "public",
    )


@pytest.fixture
def federated_settings(tmp_path, key_material):
    """Settings for Shibboleth mode with throwaway key material."""
    return load_settings(
        DOMAIN=TEST_DOMAIN,
        SECRET=TEST_SECRET,
        SP_CERT_PATH=key_material["cert_path"],
        SP_KEY_PATH=key_material["key_path"],
        PUBLIC_ROOT=tmp_path / "public",
    )


# =============================================================================
# Fake SAML Collaborator
# =============================================================================

class FakeAssertionValidator:
    """
    Stand-in for python3-saml.

    ``SAMLResponse=good`` yields ``profile``; anything else is rejected.
    """

    IDP_URL = "https://shibboleth.uic.edu/idp/profile/SAML2/Redirect/SSO?SAMLRequest=fake"

    def __init__(self, profile: Optional[Dict[str, Any]] = None):
        self.profile = dict(SHIB_PROFILE) if profile is None else profile
        self.login_requests = []
        self.validated = []

    def build_login_url(self, request_data: Mapping[str, Any]) -> str:
        self.login_requests.append(request_data)
        return self.IDP_URL

    def validate_assertion(self, request_data: Mapping[str, Any]) -> Dict[str, Any]:
        self.validated.append(request_data)
        if request_data["post_data"].get("SAMLResponse") != "good":
            raise InvalidAssertion("SAML response rejected: invalid signature")
        return self.profile

    def generate_metadata(self, public_cert: str) -> str:
        return (
            '<?xml version="1.0"?>'
            '<md:EntityDescriptor xmlns:md="urn:oasis:names:tc:SAML:2.0:metadata" '
            f'entityID="https://{TEST_DOMAIN}"/>'
        )


@pytest.fixture
def fake_validator():
    return FakeAssertionValidator()


# =============================================================================
# Applications
# =============================================================================

def protected_router() -> APIRouter:
    """Application routes guarded by require_identity."""
    router = APIRouter()

    @router.get("/protected")
    async def protected(identity: Identity = Depends(require_identity)):
        return {"uid": identity.uid}

    return router


@pytest.fixture
def local_app(local_settings):
    return create_app(local_settings, routers=[protected_router()])


@pytest.fixture
def local_client(local_app):
    with TestClient(local_app, follow_redirects=False) as client:
        yield client


@pytest.fixture
def federated_app(federated_settings, fake_validator):
    strategy = build_strategy(federated_settings, validator=fake_validator)
    return create_app(federated_settings, strategy=strategy, routers=[protected_router()])


@pytest.fixture
def federated_client(federated_app):
    # Session cookie is Secure in Shibboleth mode, so talk HTTPS.
    with TestClient(federated_app, base_url="https://testserver", follow_redirects=False) as client:
        yield client
