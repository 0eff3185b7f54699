import logging
from collections import Counter

from backend.exceptions import InvalidStatusTransitionError, RequestNotFoundError
from backend.matching import (
    DEFAULT_MATCHING_CONFIGURATION,
    find_compatible_pairs,
    rank_matches,
    summarize_matches,
)
from backend.models import Donor, OrganRequest, RequestStatus
from backend.store import DynamoOrganStore

logger = logging.getLogger(__name__)


class OrganMatchBackend:
    """Backend logic for OrganConnect matching operations"""

    def __init__(self, store, default_config=DEFAULT_MATCHING_CONFIGURATION):
        self.store = store
        self.default_config = default_config

    @classmethod
    def from_config(cls, settings):
        """Build from a Flask config (or any mapping with the same keys)"""
        store = DynamoOrganStore.from_config(
            region=settings.get("AWS_REGION"),
            donors_table=settings.get("DONORS_TABLE", "donors"),
            requests_table=settings.get("REQUESTS_TABLE", "requests"),
            endpoint_url=settings.get("DYNAMODB_ENDPOINT_URL"),
        )
        default_config = DEFAULT_MATCHING_CONFIGURATION.with_overrides(settings.get("MATCHING_DEFAULTS"))
        return cls(store, default_config)

    def load_donors(self):
        return [Donor.from_item(item) for item in self.store.list_donors()]

    def load_requests(self, status=None):
        requests = [OrganRequest.from_item(item) for item in self.store.list_requests()]
        if status is not None:
            status = RequestStatus.parse(status)
            requests = [r for r in requests if r.status is status]
        return requests

    def matching_config(self, overrides=None):
        return self.default_config.with_overrides(overrides)

    def find_matches(self, overrides=None, now=None):
        """Rank every pending request against the full donor pool"""
        config = self.matching_config(overrides)
        donors = self.load_donors()
        requests = self.load_requests()
        matches = rank_matches(donors, requests, config, now=now)
        logger.info("Organ matching found %d potential matches", len(matches))
        return matches

    def match_summary(self, overrides=None, now=None):
        return summarize_matches(self.find_matches(overrides, now=now))

    def find_pairs(self, now=None):
        """Same-blood-type donor/request pairs with their compatibility percentage"""
        pairs = find_compatible_pairs(self.load_donors(), self.load_requests(), now=now)
        logger.info("Pairwise matching found %d donor/request pairs", len(pairs))
        return pairs

    def request_stats(self):
        donors = self.store.list_donors()
        requests = self.load_requests()
        by_status = Counter(r.status.value for r in requests)
        return {
            "donors": len(donors),
            "requests": len(requests),
            "byStatus": {s.value: by_status.get(s.value, 0) for s in RequestStatus},
        }

    def approve_request(self, request_id, donor_id=None):
        request = self._transition(request_id, RequestStatus.APPROVED)
        logger.info("Approved organ request %s (donor %s)", request_id, donor_id or "unspecified")
        return request

    def reject_request(self, request_id):
        request = self._transition(request_id, RequestStatus.REJECTED)
        logger.info("Rejected organ request %s", request_id)
        return request

    def _transition(self, request_id, target):
        request = self._get_request(request_id)
        if request.status is target:
            return request
        if request.status.is_terminal:
            raise InvalidStatusTransitionError(request_id, request.status.value, target.value)

        updated = self.store.set_request_status(request_id, target)
        if updated is not None:
            return OrganRequest.from_item(updated)

        # someone else moved it first
        request = self._get_request(request_id)
        if request.status is target:
            return request
        raise InvalidStatusTransitionError(request_id, request.status.value, target.value)

    def _get_request(self, request_id):
        item = self.store.get_request(request_id)
        if item is None:
            raise RequestNotFoundError(request_id)
        return OrganRequest.from_item(item)
