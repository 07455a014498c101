"""
SAML collaborator for UIC Shibboleth.

Signature validation, XML handling and metadata generation are delegated to
python3-saml (``onelogin.saml2``). The rest of the gateway only sees the
AssertionValidator protocol, so strategies can be exercised without any
XML security stack installed.
"""

import importlib.util
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from fastapi import Request
from pydantic import BaseModel, ConfigDict, Field

from login_gateway.exceptions import ConfigurationError, InvalidAssertion

logger = logging.getLogger(__name__)


HTTP_POST_BINDING = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST"
HTTP_REDIRECT_BINDING = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Redirect"
UNSPECIFIED_NAMEID = "urn:oasis:names:tc:SAML:1.1:nameid-format:unspecified"

RequestData = Mapping[str, Any]
AttributeBag = Dict[str, Union[str, List[str]]]


class ServiceProviderConfig(BaseModel):
    """
    Immutable service provider settings for the Shibboleth strategy.

    ``callback_url`` is always absolute: ``https://`` + domain + callback path.
    """

    model_config = ConfigDict(frozen=True)

    entity_id: str = Field(..., description="SP entity id (https:// + domain)")
    domain: str = Field(..., description="Public domain, including any route prefix")
    callback_path: str = Field(..., description="Relative callback path")
    private_key: str = Field(..., description="SP private key (PEM)")
    public_cert: str = Field(..., description="SP public certificate (PEM)")
    idp_entry_point: str = Field(..., description="IdP SSO endpoint")
    idp_entity_id: str = Field(..., description="IdP entity id")
    idp_cert: str = Field(..., description="IdP signing certificate")
    strict: bool = Field(default=True, description="Enforce SAML security checks")

    @property
    def callback_url(self) -> str:
        return "https://" + self.domain + self.callback_path


class AssertionValidator(Protocol):
    """What the Shibboleth strategy needs from a SAML library."""

    def build_login_url(self, request_data: RequestData) -> str:
        ...

    def validate_assertion(self, request_data: RequestData) -> AttributeBag:
        ...

    def generate_metadata(self, public_cert: str) -> str:
        ...


def unwrap_attributes(attributes: Mapping[str, Any]) -> AttributeBag:
    """Collapse single-valued attribute lists to plain strings; drop empty ones."""
    profile: AttributeBag = {}
    for name, values in attributes.items():
        if isinstance(values, (list, tuple)):
            if not values:
                continue
            profile[name] = values[0] if len(values) == 1 else list(values)
        elif values is not None:
            profile[name] = values
    return profile


async def saml_request_data(request: Request) -> Dict[str, Any]:
    """Convert a FastAPI request into the dict python3-saml expects."""
    post_data = {}
    if request.method == "POST":
        form_data = await request.form()
        post_data = dict(form_data)

    https = request.url.scheme == "https"
    return {
        "https": "on" if https else "off",
        "http_host": request.url.hostname,
        "script_name": request.url.path,
        "server_port": request.url.port or (443 if https else 80),
        "get_data": dict(request.query_params),
        "post_data": post_data,
    }


def ensure_saml_library() -> None:
    """
    Raises:
        ConfigurationError: If python3-saml is not installed
    """
    if importlib.util.find_spec("onelogin") is None:
        raise ConfigurationError(
            "Shibboleth mode requires python3-saml; install 'login-gateway[saml]' "
            "or set SHIBALIKE=true for local development"
        )


class OneLoginAssertionValidator:
    """AssertionValidator backed by python3-saml."""

    def __init__(self, config: ServiceProviderConfig):
        self.config = config

    def saml_settings(self, public_cert: Optional[str] = None) -> Dict[str, Any]:
        """Build the python3-saml settings dictionary."""
        config = self.config
        return {
            "strict": config.strict,
            "debug": logger.isEnabledFor(logging.DEBUG),
            "sp": {
                "entityId": config.entity_id,
                "assertionConsumerService": {
                    "url": config.callback_url,
                    "binding": HTTP_POST_BINDING,
                },
                "NameIDFormat": UNSPECIFIED_NAMEID,
                "x509cert": public_cert or config.public_cert,
                "privateKey": config.private_key,
            },
            "idp": {
                "entityId": config.idp_entity_id,
                "singleSignOnService": {
                    "url": config.idp_entry_point,
                    "binding": HTTP_REDIRECT_BINDING,
                },
                "x509cert": config.idp_cert,
            },
            "security": {
                "authnRequestsSigned": True,
                "wantAssertionsSigned": False,
                "wantNameId": False,
            },
        }

    def _auth(self, request_data: RequestData):
        from onelogin.saml2.auth import OneLogin_Saml2_Auth

        return OneLogin_Saml2_Auth(dict(request_data), self.saml_settings())

    def build_login_url(self, request_data: RequestData) -> str:
        return self._auth(request_data).login()

    def validate_assertion(self, request_data: RequestData) -> AttributeBag:
        """
        Validate the posted SAMLResponse and return its attributes.

        Raises:
            InvalidAssertion: If the response is missing, malformed, or rejected
        """
        auth = self._auth(request_data)
        try:
            auth.process_response()
        except Exception as e:
            # Base64 and XML parse errors come through unwrapped.
            logger.warning(
                "Unable to process SAML response",
                extra={"exception_type": type(e).__name__, "error": str(e)}
            )
            raise InvalidAssertion("Unable to process SAML response") from e

        errors = auth.get_errors()
        if errors:
            reason = auth.get_last_error_reason() or ", ".join(errors)
            logger.warning("SAML response rejected", extra={"errors": errors})
            raise InvalidAssertion(f"SAML response rejected: {reason}")

        if not auth.is_authenticated():
            raise InvalidAssertion("SAML response did not authenticate the user")

        return unwrap_attributes(auth.get_attributes())

    def generate_metadata(self, public_cert: str) -> str:
        """
        Raises:
            ConfigurationError: If the generated metadata does not validate
        """
        from onelogin.saml2.settings import OneLogin_Saml2_Settings

        settings = OneLogin_Saml2_Settings(
            self.saml_settings(public_cert=public_cert),
            sp_validation_only=True,
        )
        metadata = settings.get_sp_metadata()
        if isinstance(metadata, bytes):
            metadata = metadata.decode("utf-8")

        errors = settings.validate_metadata(metadata)
        if errors:
            raise ConfigurationError(f"Generated SP metadata is invalid: {', '.join(errors)}")
        return metadata


def load_key_material(cert_path, key_path) -> Dict[str, str]:
    """
    Read and sanity-check the SP certificate and private key.

    The same pair is used for HTTPS and for signing SAML requests.

    Returns:
        Dict with ``public_cert`` and ``private_key`` PEM strings

    Raises:
        ConfigurationError: If either file is missing or not valid PEM
    """

    try:
        with open(cert_path, "rb") as f:
            cert_pem = f.read()
        with open(key_path, "rb") as f:
            key_pem = f.read()
    except OSError as e:
        raise ConfigurationError(f"Unable to read SP key material: {e}") from e

    try:
        x509.load_pem_x509_certificate(cert_pem)
    except ValueError as e:
        raise ConfigurationError(f"Invalid SP certificate {cert_path}: {e}") from e

    try:
        serialization.load_pem_private_key(key_pem, password=None)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid SP private key {key_path}: {e}") from e

    return {
        "public_cert": cert_pem.decode("utf-8"),
        "private_key": key_pem.decode("utf-8"),
    }
