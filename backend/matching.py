"""
Donor / organ-request matching and prioritization.

Everything here is a pure function of its arguments: callers fetch donors and
requests, pick a ``MatchingConfiguration`` and get back a ranked list of
``Match`` values. Nothing is cached or persisted between calls.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from backend.exceptions import InvalidConfigurationError, InvalidRecordError
from backend.models import BloodType, CompatiblePair, Donor, Match, OrganRequest, RequestStatus, UrgencyLevel

logger = logging.getLogger(__name__)

# Donor blood type -> recipient blood types that donor can supply
BLOOD_COMPATIBILITY = {
    BloodType.O_NEGATIVE: frozenset(BloodType),  # universal donor
    BloodType.O_POSITIVE: frozenset({BloodType.O_POSITIVE, BloodType.A_POSITIVE,
                                     BloodType.B_POSITIVE, BloodType.AB_POSITIVE}),
    BloodType.A_NEGATIVE: frozenset({BloodType.A_NEGATIVE, BloodType.A_POSITIVE,
                                     BloodType.AB_NEGATIVE, BloodType.AB_POSITIVE}),
    BloodType.A_POSITIVE: frozenset({BloodType.A_POSITIVE, BloodType.AB_POSITIVE}),
    BloodType.B_NEGATIVE: frozenset({BloodType.B_NEGATIVE, BloodType.B_POSITIVE,
                                     BloodType.AB_NEGATIVE, BloodType.AB_POSITIVE}),
    BloodType.B_POSITIVE: frozenset({BloodType.B_POSITIVE, BloodType.AB_POSITIVE}),
    BloodType.AB_NEGATIVE: frozenset({BloodType.AB_NEGATIVE, BloodType.AB_POSITIVE}),
    BloodType.AB_POSITIVE: frozenset({BloodType.AB_POSITIVE}),
}

URGENCY_BONUS = {
    UrgencyLevel.HIGH: 30,
    UrgencyLevel.MEDIUM: 20,
    UrgencyLevel.LOW: 10,
}

POINTS_PER_DONOR = 10
POINTS_PER_DAY = 2
MAX_WAIT_POINTS = 50
EXACT_BLOOD_MATCH_POINTS = 5

WEIGHT_RANGE = (1, 10)


class MatchingConfiguration(BaseModel):
    """
    Rules for one ranking pass.

    Field names are snake_case in Python and camelCase on the wire; both are
    accepted on input. Unknown fields are rejected rather than ignored.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)

    blood_type_compatibility: bool = True
    age_range: int = Field(default=15, ge=0)  # +/- years, 0 disables the check
    geographic_preference: bool = True  # not consulted by scoring yet
    urgency_weight: int = Field(default=8, ge=WEIGHT_RANGE[0], le=WEIGHT_RANGE[1])
    time_weight: int = Field(default=6, ge=WEIGHT_RANGE[0], le=WEIGHT_RANGE[1])

    def with_overrides(self, overrides: Optional[dict]) -> "MatchingConfiguration":
        """
        Copy with fields replaced from ``overrides``.

        Accepts snake_case or camelCase keys and string values (query strings,
        Lambda events).
        """
        if not overrides:
            return self
        if not isinstance(overrides, dict):
            raise InvalidConfigurationError(
                f"Matching configuration overrides must be an object, got {type(overrides).__name__}")

        aliases = {name: field.alias for name, field in type(self).model_fields.items()}
        data = self.model_dump(by_alias=True)
        for key, value in overrides.items():
            data[aliases.get(key, key)] = value
        try:
            return type(self).model_validate(data)
        except ValidationError as e:
            raise InvalidConfigurationError(_describe(e)) from e

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)


DEFAULT_MATCHING_CONFIGURATION = MatchingConfiguration()


def _describe(error):
    return "Invalid matching configuration: " + "; ".join(
        f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in error.errors()
    )


def is_compatible(donor: Donor, request: OrganRequest, config: MatchingConfiguration,
                  current_year: Optional[int] = None) -> bool:
    """
    Can ``donor`` be considered for ``request`` under ``config``?

    Missing optional data (blood type, birth date, age) switches the
    corresponding check off instead of failing the pair.
    """
    if request.required_organ.lower() not in donor.organs:
        return False

    if config.blood_type_compatibility and donor.blood_type and request.blood_type:
        if request.blood_type not in BLOOD_COMPATIBILITY.get(donor.blood_type, ()):
            return False

    if config.age_range > 0 and donor.date_of_birth and request.age:
        if current_year is None:
            current_year = datetime.now(timezone.utc).year
        if abs(donor.age_in(current_year) - request.age) > config.age_range:
            return False

    return True


def calculate_match_score(request: OrganRequest, compatible_donors: Sequence[Donor],
                          days_waiting: int, config: MatchingConfiguration) -> int:
    try:
        urgency_bonus = URGENCY_BONUS[request.urgency_level]
    except KeyError:
        raise InvalidRecordError(f"Unknown urgency level: {request.urgency_level!r}") from None

    score = len(compatible_donors) * POINTS_PER_DONOR
    score += urgency_bonus * (config.urgency_weight / 10)
    score += min(days_waiting * POINTS_PER_DAY, MAX_WAIT_POINTS) * (config.time_weight / 10)

    exact_matches = [d for d in compatible_donors if d.blood_type == request.blood_type]
    score += len(exact_matches) * EXACT_BLOOD_MATCH_POINTS

    # half-up, not banker's rounding
    return int(math.floor(score + 0.5))


def days_on_list(created_at: datetime, now: datetime) -> int:
    """Whole days since ``created_at``; future timestamps count as zero. Naive times are UTC."""
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max(0, (now - created_at) // timedelta(days=1))


def rank_matches(donors: Iterable[Donor], requests: Iterable[OrganRequest],
                 config: MatchingConfiguration = DEFAULT_MATCHING_CONFIGURATION,
                 now: Optional[datetime] = None) -> List[Match]:
    """
    Rank pending requests by priority score.

    Requests with no compatible donor are left out. Equal scores keep the
    order the requests were supplied in.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    donors = list(donors)
    pending = [r for r in requests if r.status is RequestStatus.PENDING]

    matches = []
    for request in pending:
        compatible = [d for d in donors if is_compatible(d, request, config, current_year=now.year)]
        if not compatible:
            continue

        waited = days_on_list(request.created_at, now)
        matches.append(Match(
            request=request,
            compatible_donors=compatible,
            match_score=calculate_match_score(request, compatible, waited, config),
            urgency_level=request.urgency_level,
            time_on_list=waited,
        ))

    matches.sort(key=lambda m: m.match_score, reverse=True)
    logger.debug("Ranked %d matches from %d pending requests and %d donors",
                 len(matches), len(pending), len(donors))
    return matches


def summarize_matches(matches: Sequence[Match]) -> dict:
    """Headline numbers shown above the match list"""
    return {
        "potentialMatches": len(matches),
        "highPriority": sum(1 for m in matches if m.urgency_level is UrgencyLevel.HIGH),
        "compatibleDonors": sum(len(m.compatible_donors) for m in matches),
    }


# Donor-by-donor compatibility shown on the admin dashboard
PAIR_SAME_BLOOD_POINTS = 40
PAIR_ORGAN_POINTS = 30
PAIR_CLOSE_AGE_POINTS = 20  # within 10 years
PAIR_NEAR_AGE_POINTS = 10  # within 20 years
PAIR_HIGH_URGENCY_POINTS = 10
PAIR_DEFAULT_DONOR_AGE = 30
PAIR_THRESHOLD = 70


def pair_compatibility(donor: Donor, request: OrganRequest, current_year: int) -> int:
    """
    Percentage compatibility of one donor with one request.

    A donor without a birth date counts as 30 years old; a request without an
    age earns no age points.
    """
    score = 0
    if donor.blood_type is not None and donor.blood_type == request.blood_type:
        score += PAIR_SAME_BLOOD_POINTS
    if request.required_organ in donor.organs:
        score += PAIR_ORGAN_POINTS

    if request.age is not None:
        donor_age = donor.age_in(current_year)
        if donor_age is None:
            donor_age = PAIR_DEFAULT_DONOR_AGE
        age_gap = abs(donor_age - request.age)
        if age_gap <= 10:
            score += PAIR_CLOSE_AGE_POINTS
        elif age_gap <= 20:
            score += PAIR_NEAR_AGE_POINTS

    if request.urgency_level is UrgencyLevel.HIGH:
        score += PAIR_HIGH_URGENCY_POINTS
    return min(score, 100)


def find_compatible_pairs(donors: Iterable[Donor], requests: Iterable[OrganRequest],
                          now: Optional[datetime] = None,
                          threshold: int = PAIR_THRESHOLD) -> List[CompatiblePair]:
    """
    Pair pending requests with donors of the same blood type who pledged the
    required organ, keeping pairs scoring strictly above ``threshold``.

    Pairs come out in request order, then donor order.
    """
    current_year = (now or datetime.now(timezone.utc)).year
    donors = list(donors)

    pairs = []
    for request in requests:
        if request.status is not RequestStatus.PENDING or request.blood_type is None:
            continue
        for donor in donors:
            if donor.blood_type != request.blood_type or request.required_organ not in donor.organs:
                continue
            compatibility = pair_compatibility(donor, request, current_year)
            if compatibility > threshold:
                pairs.append(CompatiblePair(donor=donor, request=request, compatibility=compatibility))

    logger.debug("Found %d donor/request pairs above %d%%", len(pairs), threshold)
    return pairs
