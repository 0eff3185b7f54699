from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError

from backend.core import OrganMatchBackend
from backend.exceptions import InvalidConfigurationError, InvalidStatusTransitionError, RequestNotFoundError
from backend.matching import MatchingConfiguration
from backend.models import RequestStatus
from backend.store import DynamoOrganStore, scan_all


def test_scan_follows_pagination(requests_table):
    items = scan_all(requests_table)
    assert [i["id"] for i in items] == ["r1", "r2", "r3", "r4"]
    assert requests_table.scan_calls == 2


def test_find_matches_ranks_pending_requests(backend, now):
    matches = backend.find_matches(now=now)
    # r1: 2 donors, High, 10 days, one AB+ donor -> 20 + 24 + 12 + 5
    # r2: 2 donors, Low, 1 day, one A+ donor -> 20 + 8 + 1.2 + 5
    assert [(m.request.id, m.match_score) for m in matches] == [("r1", 61), ("r2", 34)]


def test_find_matches_applies_overrides(backend, now):
    matches = backend.find_matches({"urgencyWeight": "1", "timeWeight": "10"}, now=now)
    assert [(m.request.id, m.match_score) for m in matches] == [("r1", 48), ("r2", 28)]


def test_find_matches_rejects_bad_overrides(backend):
    with pytest.raises(InvalidConfigurationError):
        backend.find_matches({"urgencyWeight": "99"})


def test_environment_defaults_feed_matching_config():
    with patch("backend.core.DynamoOrganStore.from_config") as from_config:
        backend = OrganMatchBackend.from_config({
            "AWS_REGION": "eu-west-1",
            "DONORS_TABLE": "donors-test",
            "REQUESTS_TABLE": "requests-test",
            "MATCHING_DEFAULTS": {"age_range": "5", "time_weight": "9"},
        })
    from_config.assert_called_once_with(
        region="eu-west-1", donors_table="donors-test", requests_table="requests-test", endpoint_url=None,
    )
    assert backend.default_config == MatchingConfiguration(age_range=5, time_weight=9)
    assert backend.matching_config({"timeWeight": 2}).time_weight == 2


def test_match_summary(backend, now):
    assert backend.match_summary(now=now) == {"potentialMatches": 2, "highPriority": 1, "compatibleDonors": 4}


def test_request_stats(backend):
    assert backend.request_stats() == {
        "donors": 3,
        "requests": 4,
        "byStatus": {"Pending": 3, "Approved": 1, "Rejected": 0},
    }


def test_load_requests_filtered_by_status(backend):
    assert [r.id for r in backend.load_requests("approved")] == ["r4"]


class TestStatusTransitions:

    def test_approve_pending_request(self, backend, requests_table, now):
        approved = backend.approve_request("r1", donor_id="d3")
        assert approved.status is RequestStatus.APPROVED
        assert requests_table.items["r1"]["status"] == "Approved"
        assert [m.request.id for m in backend.find_matches(now=now)] == ["r2"]

    def test_reject_pending_request(self, backend, requests_table):
        assert backend.reject_request("r2").status is RequestStatus.REJECTED
        assert requests_table.items["r2"]["status"] == "Rejected"

    def test_repeating_a_transition_is_harmless(self, backend):
        backend.approve_request("r1")
        assert backend.approve_request("r1").status is RequestStatus.APPROVED

    def test_terminal_status_cannot_change(self, backend, requests_table):
        with pytest.raises(InvalidStatusTransitionError) as excinfo:
            backend.reject_request("r4")
        assert excinfo.value.current == "Approved"
        assert requests_table.items["r4"]["status"] == "Approved"

    def test_unknown_request(self, backend):
        with pytest.raises(RequestNotFoundError):
            backend.approve_request("nope")

    def test_lost_race_to_same_status(self):
        store = Mock()
        store.get_request.side_effect = [
            {"id": "r1", "requiredOrgan": "heart", "urgencyLevel": "High",
             "status": "Pending", "createdAt": "2025-06-01T00:00:00Z"},
            {"id": "r1", "requiredOrgan": "heart", "urgencyLevel": "High",
             "status": "Approved", "createdAt": "2025-06-01T00:00:00Z"},
        ]
        store.set_request_status.return_value = None
        backend = OrganMatchBackend(store)
        assert backend.approve_request("r1").status is RequestStatus.APPROVED

    def test_lost_race_to_other_status(self):
        store = Mock()
        store.get_request.side_effect = [
            {"id": "r1", "requiredOrgan": "heart", "urgencyLevel": "High",
             "status": "Pending", "createdAt": "2025-06-01T00:00:00Z"},
            {"id": "r1", "requiredOrgan": "heart", "urgencyLevel": "High",
             "status": "Rejected", "createdAt": "2025-06-01T00:00:00Z"},
        ]
        store.set_request_status.return_value = None
        backend = OrganMatchBackend(store)
        with pytest.raises(InvalidStatusTransitionError):
            backend.approve_request("r1")


def test_store_reraises_unexpected_client_errors():
    table = Mock()
    table.update_item.side_effect = ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}}, "UpdateItem"
    )
    store = DynamoOrganStore(Mock(), table)
    with pytest.raises(ClientError):
        store.set_request_status("r1", RequestStatus.APPROVED)


def test_store_sends_conditional_update():
    table = Mock()
    table.update_item.return_value = {"Attributes": {"id": "r1", "status": "Rejected"}}
    store = DynamoOrganStore(Mock(), table)

    assert store.set_request_status("r1", RequestStatus.REJECTED) == {"id": "r1", "status": "Rejected"}
    kwargs = table.update_item.call_args.kwargs
    assert kwargs["Key"] == {"id": "r1"}
    assert kwargs["ConditionExpression"] == "#status = :pending"
    assert kwargs["ExpressionAttributeValues"] == {":target": "Rejected", ":pending": "Pending"}


def test_find_pairs(backend, now):
    pairs = backend.find_pairs(now=now)
    assert [(p.donor.id, p.request.id, p.compatibility) for p in pairs] == [("d3", "r1", 80)]
