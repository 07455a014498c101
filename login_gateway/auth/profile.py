"""
Shibboleth profile normalization.

Maps the attribute bag released by the UIC Shibboleth IdP, keyed by
standardized OIDs, onto the canonical Identity record.
"""

import logging
from typing import List, Mapping, Optional, Union

from login_gateway.exceptions import EmptyProfile
from login_gateway.models import Identity

logger = logging.getLogger(__name__)


# Attributes released by the IdP.
# Accessible at https://shibtest.uic.edu/test/ (must be logged in)
PROFILE_ATTRIBUTES = {
    "urn:oid:2.16.840.1.113730.3.1.241": "displayName",
    "urn:oid:1.3.6.1.4.1.5923.1.1.1.1": "eduPersonAffiliation",
    "urn:oid:1.3.6.1.4.1.5923.1.1.1.11": "eduPersonAssurance",
    "urn:oid:1.3.6.1.4.1.5923.1.1.1.7": "eduPersonEntitlement",
    "urn:oid:1.3.6.1.4.1.5923.1.1.1.5": "eduPersonPrimaryAffiliation",
    "urn:oid:1.3.6.1.4.1.5923.1.1.1.6": "eduPersonPrincipalName",
    "urn:oid:1.3.6.1.4.1.5923.1.1.1.9": "eduPersonScopedAffiliation",
    "urn:oid:1.3.6.1.4.1.5923.1.1.1.13": "eduPersonUniqueId",
    "urn:oid:2.16.840.1.113730.3.1.3": "employeeNumber",
    "urn:oid:2.5.4.42": "givenName",
    "urn:oid:1.3.6.1.4.1.25178.1.2.10": "homeOrganizationType",
    "urn:oid:1.3.6.1.4.1.11483.101.1": "iTrustAffiliation",
    "urn:oid:1.3.6.1.4.1.11483.101.5": "iTrustHomeDeptCode",
    "urn:oid:1.3.6.1.4.1.11483.101.3": "iTrustSuppress",
    "urn:oid:1.3.6.1.4.1.11483.101.4": "iTrustUIN",
    "urn:oid:1.3.6.1.4.1.5923.1.5.1.1": "isMemberOf",
    "urn:oid:0.9.2342.19200300.100.1.3": "mail",
    "urn:oid:2.5.4.10": "organizationName",
    "urn:oid:2.5.4.11": "organizationalUnit",
    "urn:oid:2.5.4.4": "surname",
    "urn:oid:2.5.4.12": "title",
    "urn:oid:0.9.2342.19200300.100.1.1": "uid",
    "urn:oid:1.3.6.1.4.1.11483.1.10": "uin",
}

RawProfile = Mapping[str, Union[str, List[str]]]


def normalize(raw_attributes: Optional[RawProfile]) -> Identity:
    """
    Convert a Shibboleth attribute bag into an Identity.

    Keys missing from PROFILE_ATTRIBUTES are dropped.

    Args:
        raw_attributes: Attribute bag keyed by OID

    Returns:
        Identity holding only the recognized attributes

    Raises:
        EmptyProfile: If the bag is absent, empty, or holds no recognized key
    """
    if not raw_attributes:
        raise EmptyProfile()

    user = {}
    for key, value in raw_attributes.items():
        nice_name = PROFILE_ATTRIBUTES.get(key)
        if nice_name and value is not None:
            user[nice_name] = value

    if not user:
        logger.warning(
            "SAML profile carried no recognized attributes",
            extra={"attribute_count": len(raw_attributes)}
        )
        raise EmptyProfile("SAML profile carried no recognized attributes")

    return Identity.model_validate(user)
