"""
Profile normalization tests.
"""

import pytest
from pydantic import ValidationError

from login_gateway.auth.profile import PROFILE_ATTRIBUTES, normalize
from login_gateway.exceptions import EmptyProfile
from login_gateway.models import Identity


class TestNormalize:

    def test_keeps_exactly_recognized_fields(self):
        raw = {
            "urn:oid:0.9.2342.19200300.100.1.1": "jdoe",
            "urn:oid:2.16.840.1.113730.3.1.241": "Jane Doe",
            "urn:oid:9.9.9.9": "ignored",
            "Shib-Session-ID": "abc123",
        }

        identity = normalize(raw)

        assert identity.attributes() == {"uid": "jdoe", "displayName": "Jane Doe"}

    def test_multi_valued_attributes_are_kept(self):
        identity = normalize({"urn:oid:1.3.6.1.4.1.5923.1.1.1.1": ["member", "staff"]})
        assert identity.affiliation == ("member", "staff")
        assert identity.attributes() == {"eduPersonAffiliation": ["member", "staff"]}

    def test_every_known_oid_maps_to_an_identity_field(self):
        raw = {oid: f"value-{name}" for oid, name in PROFILE_ATTRIBUTES.items()}

        identity = normalize(raw)

        assert len(PROFILE_ATTRIBUTES) == 23
        assert set(identity.attributes()) == set(Identity.attribute_names())

    @pytest.mark.parametrize("raw", [None, {}])
    def test_empty_profile_raises(self, raw):
        with pytest.raises(EmptyProfile) as exc_info:
            normalize(raw)
        assert exc_info.value.reason == "Empty SAML profile returned!"

    def test_profile_without_recognized_keys_raises(self):
        with pytest.raises(EmptyProfile):
            normalize({"urn:oid:9.9.9.9": "unknown"})

    def test_result_is_immutable(self):
        identity = normalize({"urn:oid:0.9.2342.19200300.100.1.1": "jdoe"})
        with pytest.raises(ValidationError):
            identity.uid = "someone-else"

    def test_multi_valued_attributes_cannot_be_mutated(self):
        identity = normalize({"urn:oid:1.3.6.1.4.1.5923.1.1.1.1": ["member", "student"]})
        with pytest.raises(AttributeError):
            identity.affiliation.append("staff")
        assert identity.affiliation == ("member", "student")

    def test_null_values_do_not_count(self):
        with pytest.raises(EmptyProfile):
            normalize({"urn:oid:0.9.2342.19200300.100.1.1": None})
