"""
Tests for verifier variants, authentication messages and service descriptors.
"""

import pytest

from zen_shared.models import (
    Channel, Code, Empty, LoginRequest, LoginResponse, MethodDescriptor,
    ServiceDescriptor, verifier_from_dict
)
from zen_client.services import SERVICES, PlanningService


class TestVerifiers:
    """Test verifier validation and wire form."""

    def test_channel(self):
        assert Channel("user@example.com").to_dict() == {
            'stage': 'VERIFIER_STAGE_EMAIL', 'email': 'user@example.com'
        }

    def test_code_with_identifier(self):
        assert Code("1234", "user@example.com").to_dict() == {
            'stage': 'VERIFIER_STAGE_CODE', 'code': '1234', 'email': 'user@example.com'
        }

    @pytest.mark.parametrize("factory", [lambda: Channel(""), lambda: Code("")])
    def test_empty_values_rejected(self, factory):
        with pytest.raises(ValueError):
            factory()

    @pytest.mark.parametrize("verifier", [Channel("a@b.c"), Code("1234"), Empty()])
    def test_parse_wire_form(self, verifier):
        assert verifier_from_dict(verifier.to_dict()) == verifier


class TestLoginMessages:
    """Test login request/response encoding."""

    def test_refresh_request_omits_verifier(self):
        assert LoginRequest().to_dict() == {'autoRefresh': True}

    def test_request_from_dict(self):
        request = LoginRequest.from_dict({'verifier': {'stage': 'VERIFIER_STAGE_CODE', 'code': '1234'}})

        assert request.verifier == Code("1234")
        assert request.auto_refresh is False

    def test_response_without_token(self):
        assert LoginResponse.from_dict({}).token == ""
        assert LoginResponse.from_dict({'token': None}).token == ""


class TestDescriptors:
    """Test service descriptors."""

    def test_attribute_names(self):
        assert MethodDescriptor("Get").attribute_name == "get"
        assert MethodDescriptor("UpsertPlan").attribute_name == "upsert_plan"

    def test_procedure_path(self):
        method = PlanningService.method("Upsert")

        assert PlanningService.procedure(method) == "/v1.scheduler.planning.PlanningService/Upsert"
        assert PlanningService.method("upsert") is method

    def test_unknown_method(self):
        with pytest.raises(KeyError):
            PlanningService.method("Start")

    def test_service_names_required(self):
        with pytest.raises(ValueError):
            ServiceDescriptor("", ())

    def test_known_services(self):
        assert sorted(SERVICES) == ['authentication', 'management', 'planning', 'timing']
