"""
Data Models Module

This module defines Pydantic models for request/response validation
and data serialization throughout the login gateway.

Models are organized by functional area:
- Identity models (the canonical authenticated-user record)
- Authentication models (local login submissions, failure bodies)
- Health check models
"""

from typing import List, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


# Multi-valued attributes are held as tuples.
AttributeValue = Union[Tuple[str, ...], str]


# ============================================================================
# Identity Models
# ============================================================================

class Identity(BaseModel):
    """
    Canonical authenticated-user record.

    Produced by both the Shibboleth and the local login paths. Fields are
    exposed under their directory attribute names (e.g. ``eduPersonPrincipalName``);
    anything not declared here is dropped on construction. Instances are frozen.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    display_name: Optional[AttributeValue] = Field(None, alias="displayName")
    affiliation: Optional[AttributeValue] = Field(None, alias="eduPersonAffiliation")
    assurance: Optional[AttributeValue] = Field(None, alias="eduPersonAssurance")
    entitlement: Optional[AttributeValue] = Field(None, alias="eduPersonEntitlement")
    primary_affiliation: Optional[AttributeValue] = Field(
        None, alias="eduPersonPrimaryAffiliation"
    )
    principal_name: Optional[AttributeValue] = Field(None, alias="eduPersonPrincipalName")
    scoped_affiliation: Optional[AttributeValue] = Field(
        None, alias="eduPersonScopedAffiliation"
    )
    unique_id: Optional[AttributeValue] = Field(None, alias="eduPersonUniqueId")
    employee_number: Optional[AttributeValue] = Field(None, alias="employeeNumber")
    given_name: Optional[AttributeValue] = Field(None, alias="givenName")
    home_organization_type: Optional[AttributeValue] = Field(
        None, alias="homeOrganizationType"
    )
    itrust_affiliation: Optional[AttributeValue] = Field(None, alias="iTrustAffiliation")
    itrust_home_dept_code: Optional[AttributeValue] = Field(
        None, alias="iTrustHomeDeptCode"
    )
    itrust_suppress: Optional[AttributeValue] = Field(None, alias="iTrustSuppress")
    itrust_uin: Optional[AttributeValue] = Field(None, alias="iTrustUIN")
    member_of: Optional[AttributeValue] = Field(None, alias="isMemberOf")
    mail: Optional[AttributeValue] = Field(None, alias="mail")
    organization_name: Optional[AttributeValue] = Field(None, alias="organizationName")
    organizational_unit: Optional[AttributeValue] = Field(None, alias="organizationalUnit")
    surname: Optional[AttributeValue] = Field(None, alias="surname")
    title: Optional[AttributeValue] = Field(None, alias="title")
    uid: Optional[AttributeValue] = Field(None, alias="uid")
    uin: Optional[AttributeValue] = Field(None, alias="uin")

    @classmethod
    def attribute_names(cls) -> List[str]:
        """Canonical (alias) names of every recognized attribute."""
        return [field.alias or name for name, field in cls.model_fields.items()]

    @model_validator(mode="after")
    def check_not_empty(self) -> "Identity":
        if all(getattr(self, name) is None for name in type(self).model_fields):
            raise ValueError("Identity must carry at least one attribute")
        return self

    def attributes(self) -> dict:
        """Populated attributes keyed by canonical name, multi-valued ones as lists."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================================
# Authentication Models
# ============================================================================

class LoginForm(BaseModel):
    """
    Credentials posted by the local login form.

    The bundled client posts ``email`` / ``password``; ``identifier`` /
    ``secret`` are accepted as well.
    """
    identifier: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("identifier", "email", "username"),
        description="User identifier (uid)",
    )
    secret: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("secret", "password"),
        description="Password",
    )


class UserResponse(BaseModel):
    """Response body of the user details route."""
    user: dict = Field(..., description="Serialized identity of the current user")


class AuthErrorResponse(BaseModel):
    """Body returned when a Shibboleth login callback fails."""
    error: str = Field(..., description="Failure code")
    message: str = Field(..., description="Human-readable reason")


# ============================================================================
# Health Check Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    mode: str = Field(..., description="Active authentication strategy kind")
