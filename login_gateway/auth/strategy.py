"""
Authentication strategies.

Two variants, selected once at startup:

- FederatedStrategy ("uicsaml"): UIC Shibboleth single sign-on over SAML
- LocalStrategy ("local"): static user list for development ("shibalike")

Both expose ``kind``, ``name``, ``initiate(request_data)`` and
``complete(submission)``. Component failures never escape ``complete``;
they come back inside an AuthOutcome.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Optional, Union

from login_gateway.auth.credentials import CredentialVerifier, load_credential_records
from login_gateway.auth.profile import normalize
from login_gateway.auth.saml import (
    AssertionValidator,
    OneLoginAssertionValidator,
    ServiceProviderConfig,
    ensure_saml_library,
    load_key_material,
)
from login_gateway.config import Settings
from login_gateway.exceptions import AuthFailure, InvalidAssertion, InvalidCredentials
from login_gateway.models import Identity

logger = logging.getLogger(__name__)


FEDERATED = "federated"
LOCAL = "local"


@dataclass(frozen=True)
class AuthOutcome:
    """Result of Strategy.complete(): exactly one of identity / error is set."""

    identity: Optional[Identity] = None
    error: Optional[AuthFailure] = None

    @property
    def ok(self) -> bool:
        return self.identity is not None

    @classmethod
    def succeeded(cls, identity: Identity) -> "AuthOutcome":
        return cls(identity=identity)

    @classmethod
    def failed(cls, error: AuthFailure) -> "AuthOutcome":
        return cls(error=error)


@dataclass(frozen=True)
class FederatedStrategy:
    """UIC Shibboleth single sign-on."""

    config: ServiceProviderConfig
    validator: AssertionValidator = field(compare=False)
    kind: Literal["federated"] = FEDERATED
    name: str = "uicsaml"

    def initiate(self, request_data: Mapping[str, Any]) -> str:
        """Return the IdP URL the user agent must be redirected to."""
        return self.validator.build_login_url(request_data)

    def complete(self, submission: Mapping[str, Any]) -> AuthOutcome:
        """
        Validate the assertion posted by the IdP and normalize its profile.

        Args:
            submission: python3-saml style request data (``post_data`` holds
                        the SAMLResponse)
        """
        post_data = submission.get("post_data") or {}
        if not post_data.get("SAMLResponse"):
            return AuthOutcome.failed(InvalidAssertion("Missing SAMLResponse"))

        try:
            profile = self.validator.validate_assertion(submission)
            identity = normalize(profile)
        except AuthFailure as e:
            logger.warning(
                "Shibboleth login failed",
                extra={"code": e.code, "reason": e.reason}
            )
            return AuthOutcome.failed(e)

        logger.info("Shibboleth login succeeded", extra={"uid": identity.uid})
        return AuthOutcome.succeeded(identity)

    def metadata(self, public_cert: str) -> str:
        """Service provider metadata document."""
        return self.validator.generate_metadata(public_cert)


@dataclass(frozen=True)
class LocalStrategy:
    """Local ("shibalike") users for development."""

    verifier: CredentialVerifier = field(compare=False)
    kind: Literal["local"] = LOCAL
    name: str = "local"

    def initiate(self, request_data: Mapping[str, Any]) -> None:
        # The login form posts credentials itself.
        return None

    def complete(self, submission: Mapping[str, Any]) -> AuthOutcome:
        """
        Check ``identifier`` / ``secret`` from the submitted form.
        """
        identifier = submission.get("identifier")
        secret = submission.get("secret")
        if not identifier or not secret:
            return AuthOutcome.failed(InvalidCredentials("Missing credentials"))

        try:
            identity = self.verifier.verify(identifier, secret)
        except AuthFailure as e:
            return AuthOutcome.failed(e)

        return AuthOutcome.succeeded(identity)


Strategy = Union[FederatedStrategy, LocalStrategy]


def build_service_provider_config(settings: Settings, key_material: Mapping[str, str]) -> ServiceProviderConfig:
    return ServiceProviderConfig(
        entity_id=settings.entity_id,
        domain=settings.DOMAIN + settings.PRE_AUTH_URL,
        callback_path=settings.LOGIN_CALLBACK_URL,
        private_key=key_material["private_key"],
        public_cert=key_material["public_cert"],
        idp_entry_point=settings.IDP_ENTRY_POINT,
        idp_entity_id=settings.IDP_ENTITY_ID,
        idp_cert=settings.IDP_CERT,
        strict=settings.SAML_STRICT,
    )


def build_strategy(
    settings: Settings,
    validator: Optional[AssertionValidator] = None,
) -> Strategy:
    """
    Construct the single strategy for this deployment.

    Args:
        settings: Loaded settings; SHIBALIKE selects the variant
        validator: Optional SAML collaborator (defaults to python3-saml)

    Raises:
        ConfigurationError: If key material, the user list, or the SAML
                            library is unavailable
    """
    if settings.SHIBALIKE:
        records = load_credential_records(settings.LOCAL_USERS_PATH)
        logger.warning("Using local shibalike users; do not run this in production")
        return LocalStrategy(verifier=CredentialVerifier(records))

    key_material = load_key_material(settings.SP_CERT_PATH, settings.SP_KEY_PATH)
    config = build_service_provider_config(settings, key_material)
    if validator is None:
        ensure_saml_library()
        validator = OneLoginAssertionValidator(config)

    logger.info(
        "Using UIC Shibboleth strategy",
        extra={"entity_id": config.entity_id, "callback_url": config.callback_url}
    )
    return FederatedStrategy(config=config, validator=validator)
