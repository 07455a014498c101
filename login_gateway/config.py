"""
Configuration module for the Login Gateway.

This module uses Pydantic Settings to load and validate environment variables
for the authentication mode (UIC Shibboleth or local "shibalike" users),
session signing, listen ports, logging, and route layout.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from login_gateway.exceptions import ConfigurationError


# UIC Shibboleth IdP defaults.
# Signing cert from the I-Trust Federation Registry (no PEM headers).
UIC_IDP_ENTRY_POINT = "https://shibboleth.uic.edu/idp/profile/SAML2/Redirect/SSO"
UIC_IDP_ENTITY_ID = "urn:mace:incommon:uic.edu"
UIC_IDP_CERT = (
    "MIIDDTCCAfWgAwIBAgIJAJmphosislTSMA0GCSqGSIb3DQEBCwUAMB0xGzAZBgNV"
    "BAMMEnNoaWJib2xldGgudWljLmVkdTAeFw0yMTA2MTkxNTU3MDFaFw0zNzA3MTUx"
    "NTU3MDFaMB0xGzAZBgNVBAMMEnNoaWJib2xldGgudWljLmVkdTCCASIwDQYJKoZI"
    "hvcNAQEBBQADggEPADCCAQoCggEBALfOyXJ43aA1cI/CmNbjrfOATCdwFqrMsx3I"
    "KSUOy7rIGMXGnlLeW4d3vNpiy/bUdEUQA0Utc/S8EM/dl/mrNinGvnNGg3v2XnPl"
    "YTpmXcHyOg0efDLsysqYuDM6hcBs8vsrwgC4CZc+qu9wOOyeXecoueQYDVGKjiTR"
    "yy4eHmP+fQVwJi3nL+aID3VmFJ3hcl85p/kgiGyrvyWdlgK+TWv5xD2/BscjHXDJ"
    "WyfZ1LPJiW1DDEE4OCl+mrg/DQmr3Km+MsvnuqFgcpWqeZdl+LkzTz4FpS7O2iaK"
    "t7qgbWWeilhN3jvFJY713j/wJr5yho1xbYWp3UTbHg84orUGlgECAwEAAaNQME4w"
    "HQYDVR0OBBYEFP1f4OS9LtMlqAZIL6ZjKCztc05NMB8GA1UdIwQYMBaAFP1f4OS9"
    "LtMlqAZIL6ZjKCztc05NMAwGA1UdEwQFMAMBAf8wDQYJKoZIhvcNAQELBQADggEB"
    "AGdHNshrGRnpgYQM6JbGKz91DxifQf4EcMnh/yFeHz/POLTCrs6MdChtmBN8zA5I"
    "gh323Un2qyMORfqa5qaIfHpsJOMb8LVrn/L0YvVWDKpt2immdvzdNCJS6N6NptaX"
    "FbejyzMRYwKj05GDM/N6eR84xRLuJTsy6kbEOOfn7RDSSNv0DhatYy3bLbIcs8sA"
    "mYelMWDJkpSQW1T0KKPekz9jWaoCs/CNVeg1FNiBmQpHUKoB7C5hd46RmxwK+INM"
    "HOqqcZ4k8BmZfx4Qu3mBey2mTqZIG84ACbAc3cuY9MoR7YN+hJtOkA1hKG2jGTGu"
    "Gx/8MsJK04MCRuHZNR9vpqE="
)

LOG_FORMATS = ("dev", "combined", "json")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Exactly one authentication strategy is active per process: UIC
    Shibboleth (SAML) by default, or local users when SHIBALIKE is set.
    """

    # =========================================================================
    # Deployment Identity (required)
    # =========================================================================

    DOMAIN: str = Field(
        ...,
        description="Domain name of this server (e.g., test.uic.edu)",
        min_length=1,
    )

    SECRET: str = Field(
        ...,
        description="Application secret used to sign session cookies",
        min_length=1,
    )

    # =========================================================================
    # Authentication Mode
    # =========================================================================

    SHIBALIKE: bool = Field(
        default=False,
        description="Use local credential list instead of UIC Shibboleth",
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    HTTPPORT: int = Field(
        default=80,
        description="Port for the HTTP listener",
        ge=1,
        le=65535,
    )

    HTTPSPORT: int = Field(
        default=443,
        description="Port for the HTTPS listener (Shibboleth mode only)",
        ge=1,
        le=65535,
    )

    PUBLIC_ROOT: Path = Field(
        default=Path("public"),
        description="Directory holding the compiled client (index.html is the login form)",
    )

    # =========================================================================
    # Logging
    # =========================================================================

    LOGFORMAT: str = Field(
        default="dev",
        description="Request log format: dev, combined, or json",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # =========================================================================
    # Key Material / Credential Sources
    # =========================================================================

    SP_CERT_PATH: Path = Field(
        default=Path("security/sp-cert.pem"),
        description="Service provider public certificate (PEM), Shibboleth mode",
    )

    SP_KEY_PATH: Path = Field(
        default=Path("security/sp-key.pem"),
        description="Service provider private key (PEM), Shibboleth mode",
    )

    LOCAL_USERS_PATH: Path = Field(
        default=Path("shibalike-users.json"),
        description="JSON list of local users, shibalike mode",
    )

    # =========================================================================
    # Route Layout
    # =========================================================================

    PRE_AUTH_URL: str = Field(
        default="",
        description="Optional prefix for authentication routes (e.g., /shibboleth)",
    )

    LOGIN_URL: str = Field(default="/login", description="Login route")
    LOGIN_CALLBACK_URL: str = Field(
        default="/login/callback",
        description="Route the IdP posts assertions to",
    )
    LOGOUT_URL: str = Field(default="/logout", description="Logout route")
    USER_URL: str = Field(default="/user", description="Current user details route")
    METADATA_URL: str = Field(
        default="/shibboleth.sso/metadata",
        description="Service provider metadata route",
    )
    POST_LOGIN_URL: str = Field(
        default="/",
        description="Where to send users after login when no target was recorded",
    )

    # =========================================================================
    # Identity Provider
    # =========================================================================

    IDP_ENTRY_POINT: str = Field(
        default=UIC_IDP_ENTRY_POINT,
        description="IdP single sign-on endpoint (HTTP-Redirect binding)",
    )

    IDP_ENTITY_ID: str = Field(
        default=UIC_IDP_ENTITY_ID,
        description="IdP entity id",
    )

    IDP_CERT: str = Field(
        default=UIC_IDP_CERT,
        description="IdP signing certificate, base64 body without PEM headers",
    )

    SAML_STRICT: bool = Field(
        default=True,
        description="Enforce all SAML security checks on incoming assertions",
    )

    # =========================================================================
    # Session Cookie
    # =========================================================================

    SESSION_COOKIE: str = Field(
        default="connect.sid",
        description="Name of the signed session cookie",
    )

    SESSION_MAX_AGE: Optional[int] = Field(
        default=None,
        description="Session cookie max age in seconds (unset = browser session)",
        ge=60,
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def auth_mode(self) -> str:
        """Name of the active strategy kind."""
        return "local" if self.SHIBALIKE else "federated"

    @property
    def entity_id(self) -> str:
        """
        Service provider entity id.

        UIC Shibboleth wants the full website URL as the entity ID.
        """
        return f"https://{self.DOMAIN}{self.PRE_AUTH_URL}"

    @property
    def callback_route(self) -> str:
        """Path the login callback is mounted on."""
        return self.PRE_AUTH_URL + self.LOGIN_CALLBACK_URL

    @property
    def callback_absolute_url(self) -> str:
        """Absolute assertion consumer URL registered with the IdP."""
        return "https://" + self.DOMAIN + self.PRE_AUTH_URL + self.LOGIN_CALLBACK_URL

    @property
    def https_base_url(self) -> str:
        """Public HTTPS origin, with the port only when non-default."""
        base = f"https://{self.DOMAIN}"
        if self.HTTPSPORT != 443:
            base += f":{self.HTTPSPORT}"
        return base

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("DOMAIN")
    @classmethod
    def validate_domain(cls, v: str) -> str:
        """
        Validate DOMAIN is a bare host name.

        Raises:
            ValueError: If a scheme, path, or whitespace is present
        """
        v = v.strip()
        if not v:
            raise ValueError("DOMAIN must not be empty")
        if "://" in v or "/" in v or " " in v:
            raise ValueError(
                f"Invalid domain format: '{v}'. "
                "Expected a bare host name such as 'test.uic.edu'"
            )
        return v

    @field_validator("LOGFORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in LOG_FORMATS:
            raise ValueError(f"LOGFORMAT must be one of {list(LOG_FORMATS)}, got: {v}")
        return v

    @field_validator(
        "LOGIN_URL",
        "LOGIN_CALLBACK_URL",
        "LOGOUT_URL",
        "USER_URL",
        "METADATA_URL",
        "POST_LOGIN_URL",
    )
    @classmethod
    def validate_route(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"Route must start with '/': {v}")
        return v

    @field_validator("PRE_AUTH_URL")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        v = v.rstrip("/")
        if v and not v.startswith("/"):
            raise ValueError(f"PRE_AUTH_URL must start with '/': {v}")
        return v


# =============================================================================
# Loading
# =============================================================================

def _describe_validation_error(exc: ValidationError) -> List[str]:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "settings"
        if error.get("type") == "missing":
            problems.append(f"{location} is required")
        else:
            problems.append(f"{location}: {error.get('msg')}")
    return problems


def load_settings(**overrides) -> Settings:
    """
    Build Settings, converting validation problems into ConfigurationError.

    Args:
        **overrides: Explicit values taking precedence over the environment

    Returns:
        Validated Settings instance

    Raises:
        ConfigurationError: If a required variable is missing or invalid
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = _describe_validation_error(e)
        raise ConfigurationError(
            "Invalid gateway configuration: " + "; ".join(problems)
        ) from e


@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Raises:
        ConfigurationError: If required environment variables are missing
                            or invalid.
    """
    return load_settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate deployment files and return a status report.

    This can be called during application startup to surface missing
    certificates or credential lists before the first login attempt.

    Returns:
        Dictionary with validation status and any warnings.
    """
    errors = []
    warnings = []

    if settings.SHIBALIKE:
        if not settings.LOCAL_USERS_PATH.is_file():
            errors.append(f"Local users file not found: {settings.LOCAL_USERS_PATH}")
        warnings.append("SHIBALIKE mode is enabled; never use it in production")
    else:
        for path in (settings.SP_CERT_PATH, settings.SP_KEY_PATH):
            if not path.is_file():
                errors.append(f"Key material not found: {path}")

    if len(settings.SECRET) < 32:
        warnings.append("SECRET is shorter than recommended (32+ chars)")

    if not settings.PUBLIC_ROOT.is_dir():
        warnings.append(f"Public root not found, static files disabled: {settings.PUBLIC_ROOT}")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "mode": settings.auth_mode,
    }
