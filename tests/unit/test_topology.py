import pytest
from pydantic import ValidationError
from stackorch.MODELS.topology import TopologyIdentity, TopologyKind


def test_profile_and_service_keys():
    assert TopologyIdentity.profile("fleet").key == "fleet-profile"
    assert TopologyIdentity.service("fleet").key == "fleet-service"


def test_same_name_different_kind_do_not_collide():
    profile = TopologyIdentity.profile("apache")
    service = TopologyIdentity.service("apache")
    assert profile != service
    assert profile.key != service.key
    assert len({profile, service}) == 2


def test_for_topology():
    assert TopologyIdentity.for_topology("ingest-manager", True).kind == TopologyKind.PROFILE
    assert TopologyIdentity.for_topology("ingest-manager", False).kind == TopologyKind.SERVICE
    assert str(TopologyIdentity.for_topology("ingest-manager", True)) == "ingest-manager-profile"


def test_blank_name_rejected():
    with pytest.raises(ValidationError):
        TopologyIdentity.profile("  ")


def test_identity_is_immutable():
    identity = TopologyIdentity.profile("fleet")
    with pytest.raises(ValidationError):
        identity.name = "other"
