"""
Authentication strategy tests.

Both variants are built side by side from explicit settings; the SAML
collaborator is replaced by FakeAssertionValidator.
"""

from unittest.mock import patch

import pytest

from login_gateway.auth.strategy import (
    AuthOutcome,
    FederatedStrategy,
    LocalStrategy,
    build_strategy,
)
from login_gateway.config import load_settings
from login_gateway.exceptions import (
    ConfigurationError,
    EmptyProfile,
    InvalidAssertion,
    InvalidCredentials,
)
from login_gateway.models import Identity
from login_gateway.tests.conftest import FakeAssertionValidator, TEST_DOMAIN, TEST_SECRET


def callback_submission(saml_response=None):
    post_data = {} if saml_response is None else {"SAMLResponse": saml_response}
    return {
        "https": "on",
        "http_host": TEST_DOMAIN,
        "script_name": "/login/callback",
        "server_port": 443,
        "get_data": {},
        "post_data": post_data,
    }


class TestBuildStrategy:

    def test_shibalike_selects_local(self, local_settings):
        strategy = build_strategy(local_settings)
        assert isinstance(strategy, LocalStrategy)
        assert strategy.kind == "local"
        assert strategy.name == "local"

    def test_default_selects_federated(self, federated_settings, fake_validator):
        strategy = build_strategy(federated_settings, validator=fake_validator)
        assert isinstance(strategy, FederatedStrategy)
        assert strategy.kind == "federated"
        assert strategy.name == "uicsaml"

    def test_both_variants_coexist(self, local_settings, federated_settings, fake_validator):
        local = build_strategy(local_settings)
        federated = build_strategy(federated_settings, validator=fake_validator)
        assert {local.kind, federated.kind} == {"local", "federated"}

    def test_federated_config_from_settings(self, federated_settings, key_material, fake_validator):
        strategy = build_strategy(federated_settings, validator=fake_validator)
        config = strategy.config

        assert config.entity_id == "https://test.uic.edu"
        assert config.callback_url == "https://test.uic.edu/login/callback"
        assert config.public_cert == key_material["cert_pem"]
        assert config.idp_entity_id == "urn:mace:incommon:uic.edu"

    def test_callback_url_includes_pre_auth_prefix(self, key_material, fake_validator):
        settings = load_settings(
            DOMAIN=TEST_DOMAIN,
            SECRET=TEST_SECRET,
            PRE_AUTH_URL="/shibboleth",
            SP_CERT_PATH=key_material["cert_path"],
            SP_KEY_PATH=key_material["key_path"],
        )
        strategy = build_strategy(settings, validator=fake_validator)

        assert strategy.config.entity_id == "https://test.uic.edu/shibboleth"
        assert strategy.config.callback_url == "https://test.uic.edu/shibboleth/login/callback"
        assert strategy.config.callback_url == settings.callback_absolute_url

    def test_missing_key_material(self, tmp_path, fake_validator):
        settings = load_settings(
            DOMAIN=TEST_DOMAIN,
            SECRET=TEST_SECRET,
            SP_CERT_PATH=tmp_path / "missing-cert.pem",
            SP_KEY_PATH=tmp_path / "missing-key.pem",
        )
        with pytest.raises(ConfigurationError, match="key material"):
            build_strategy(settings, validator=fake_validator)

    def test_missing_saml_library(self, federated_settings):
        with patch(
            "login_gateway.auth.strategy.ensure_saml_library",
            side_effect=ConfigurationError("python3-saml missing"),
        ):
            with pytest.raises(ConfigurationError, match="python3-saml"):
                build_strategy(federated_settings)

    def test_missing_local_users(self, tmp_path):
        settings = load_settings(
            DOMAIN=TEST_DOMAIN,
            SECRET=TEST_SECRET,
            SHIBALIKE=True,
            LOCAL_USERS_PATH=tmp_path / "nobody.json",
        )
        with pytest.raises(ConfigurationError):
            build_strategy(settings)


class TestLocalStrategy:

    @pytest.fixture
    def strategy(self, local_settings):
        return build_strategy(local_settings)

    def test_initiate_returns_none(self, strategy):
        assert strategy.initiate({}) is None

    def test_complete_success(self, strategy):
        outcome = strategy.complete({"identifier": "alice", "secret": "correctpw"})
        assert outcome.ok
        assert outcome.error is None
        assert outcome.identity.uid == "alice"
        assert outcome.identity.display_name == "Alice Example"

    def test_complete_wrong_password(self, strategy):
        outcome = strategy.complete({"identifier": "alice", "secret": "wrongpw"})
        assert not outcome.ok
        assert outcome.identity is None
        assert isinstance(outcome.error, InvalidCredentials)

    @pytest.mark.parametrize("submission", [
        {},
        {"identifier": "alice"},
        {"secret": "correctpw"},
        {"identifier": "", "secret": "correctpw"},
    ])
    def test_complete_missing_credentials(self, strategy, submission):
        outcome = strategy.complete(submission)
        assert isinstance(outcome.error, InvalidCredentials)
        assert outcome.error.reason == "Missing credentials"


class TestFederatedStrategy:

    @pytest.fixture
    def strategy(self, federated_settings, fake_validator):
        return build_strategy(federated_settings, validator=fake_validator)

    def test_initiate_returns_idp_url(self, strategy, fake_validator):
        url = strategy.initiate({"https": "on", "http_host": TEST_DOMAIN})
        assert url == FakeAssertionValidator.IDP_URL
        assert len(fake_validator.login_requests) == 1

    def test_complete_success(self, strategy):
        outcome = strategy.complete(callback_submission("good"))
        assert outcome.ok
        assert outcome.identity.uid == "jdoe"
        assert outcome.identity.affiliation == ("member", "student")

    def test_complete_missing_response(self, strategy, fake_validator):
        outcome = strategy.complete(callback_submission())
        assert isinstance(outcome.error, InvalidAssertion)
        assert outcome.error.reason == "Missing SAMLResponse"
        assert fake_validator.validated == []

    def test_complete_rejected_assertion(self, strategy):
        outcome = strategy.complete(callback_submission("tampered"))
        assert not outcome.ok
        assert isinstance(outcome.error, InvalidAssertion)

    def test_complete_empty_profile(self, federated_settings):
        strategy = build_strategy(
            federated_settings,
            validator=FakeAssertionValidator(profile={"urn:oid:9.9.9.9": "x"}),
        )
        outcome = strategy.complete(callback_submission("good"))
        assert isinstance(outcome.error, EmptyProfile)

    def test_metadata(self, strategy):
        xml = strategy.metadata(strategy.config.public_cert)
        assert "EntityDescriptor" in xml


class TestAuthOutcome:

    def test_succeeded(self):
        outcome = AuthOutcome.succeeded(Identity(uid="x"))
        assert outcome.ok and outcome.error is None

    def test_failed(self):
        outcome = AuthOutcome.failed(InvalidCredentials())
        assert not outcome.ok and outcome.identity is None
