"""Tests for policy selection and status-history replay."""

from helpdesk.config import TicketStatus
from helpdesk.calendar.domain import BusinessSchedule, DayWindow
from helpdesk.sla.domain import (
    AppliesTo,
    PolicySelector,
    SLAPolicy,
    StatusHistoryEntry,
    TicketSnapshot,
    calculate_elapsed_business_minutes,
    initial_status_from_history,
)

from tests.conftest import SAO_PAULO, utc

SCHEDULE = BusinessSchedule(
    timezone=SAO_PAULO,
    weekly={
        weekday: DayWindow("09:00", "18:00", enabled=1 <= weekday <= 5)
        for weekday in range(7)
    },
)


def _ticket(**attributes) -> TicketSnapshot:
    return TicketSnapshot(
        id="t1", created_at=utc(2024, 1, 15, 12, 0), status=TicketStatus.OPEN, **attributes
    )


def _policy(name: str, active: bool = True, **applies_to) -> SLAPolicy:
    return SLAPolicy(
        id=name,
        name=name,
        target_resolution_minutes=480,
        applies_to=AppliesTo(**applies_to),
        active=active,
    )


def _entry(old, new, at) -> StatusHistoryEntry:
    return StatusHistoryEntry(ticket_id="t1", old_status=old, new_status=new, changed_at=at)


class TestPolicySelector:

    def test_score_adds_matching_weights(self):
        ticket = _ticket(team_id="support", category_id="billing", priority="HIGH",
                         ticket_type="incident", requester_team_id="sales")
        policy = _policy("all", team_id="support", category_id="billing", priority="HIGH",
                         ticket_type="incident", requester_team_id="sales")

        assert PolicySelector.score(policy, ticket) == 30

    def test_mismatched_attribute_scores_nothing(self):
        ticket = _ticket(team_id="support", priority="LOW")
        policy = _policy("p", team_id="support", priority="HIGH")

        assert PolicySelector.score(policy, ticket) == 10

    def test_most_specific_policy_wins(self):
        ticket = _ticket(team_id="support", category_id="billing", priority="HIGH")
        policies = [
            _policy("catch-all"),
            _policy("priority", priority="HIGH"),
            _policy("team", team_id="support"),
            _policy("category", category_id="billing"),
        ]

        assert PolicySelector.select(policies, ticket).name == "team"

    def test_team_outweighs_category_and_priority_alone(self):
        ticket = _ticket(team_id="support", category_id="billing", priority="HIGH")
        policies = [
            _policy("team", team_id="support"),
            _policy("category+type", category_id="billing", ticket_type="incident"),
        ]

        assert PolicySelector.select(policies, ticket).name == "team"

    def test_unrestricted_policy_is_fallback(self):
        ticket = _ticket(team_id="support")
        policies = [_policy("catch-all"), _policy("other-team", team_id="infra")]

        assert PolicySelector.select(policies, ticket).name == "catch-all"

    def test_zero_score_tie_goes_to_first_listed(self):
        # A mismatched attribute scores nothing but does not disqualify
        ticket = _ticket(team_id="support")
        policies = [_policy("other-team", team_id="infra"), _policy("catch-all")]

        assert PolicySelector.select(policies, ticket).name == "other-team"

    def test_tie_goes_to_first_listed(self):
        ticket = _ticket(priority="HIGH")
        policies = [_policy("a", priority="HIGH"), _policy("b", priority="HIGH")]

        assert PolicySelector.select(policies, ticket).name == "a"
        assert PolicySelector.select(list(reversed(policies)), ticket).name == "b"

    def test_inactive_policies_are_skipped(self):
        ticket = _ticket(team_id="support")
        policies = [_policy("team", active=False, team_id="support"), _policy("catch-all")]

        assert PolicySelector.select(policies, ticket).name == "catch-all"

    def test_no_policies(self):
        assert PolicySelector.select([], _ticket()) is None
        assert PolicySelector.select([_policy("off", active=False)], _ticket()) is None

    def test_applies_to_ignores_unknown_and_empty_keys(self):
        applies_to = AppliesTo.from_dict({"team_id": "support", "priority": None, "color": "red"})

        assert applies_to == AppliesTo(team_id="support")
        assert applies_to.to_dict() == {"team_id": "support"}
        assert AppliesTo.from_dict(None) == AppliesTo()


class TestReplay:
    """Ticket created Monday 2024-01-15 09:00 Sao Paulo (12:00Z)."""

    def test_waiting_time_is_excluded(self):
        history = [
            _entry(TicketStatus.OPEN, TicketStatus.WAITING_REQUESTER, utc(2024, 1, 15, 13, 0)),
            _entry(TicketStatus.WAITING_REQUESTER, TicketStatus.IN_PROGRESS, utc(2024, 1, 15, 19, 0)),
            _entry(TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, utc(2024, 1, 15, 21, 0)),
        ]

        elapsed = calculate_elapsed_business_minutes(
            utc(2024, 1, 15, 12, 0), TicketStatus.OPEN, history, utc(2024, 1, 15, 21, 0), SCHEDULE
        )

        assert elapsed == 180

    def test_no_history_counts_whole_interval(self):
        assert calculate_elapsed_business_minutes(
            utc(2024, 1, 15, 12, 0), TicketStatus.OPEN, [], utc(2024, 1, 15, 15, 0), SCHEDULE
        ) == 180

    def test_resolved_stops_the_clock(self):
        history = [_entry(TicketStatus.OPEN, TicketStatus.RESOLVED, utc(2024, 1, 15, 13, 0))]

        assert calculate_elapsed_business_minutes(
            utc(2024, 1, 15, 12, 0), TicketStatus.OPEN, history, utc(2024, 1, 16, 21, 0), SCHEDULE
        ) == 60

    def test_created_in_waiting_status(self):
        history = [
            _entry(TicketStatus.WAITING_THIRD_PARTY, TicketStatus.IN_PROGRESS, utc(2024, 1, 15, 14, 0)),
        ]

        assert calculate_elapsed_business_minutes(
            utc(2024, 1, 15, 12, 0), TicketStatus.WAITING_THIRD_PARTY, history,
            utc(2024, 1, 15, 15, 0), SCHEDULE
        ) == 60

    def test_transitions_outside_window_are_ignored(self):
        history = [
            _entry(None, TicketStatus.OPEN, utc(2024, 1, 15, 12, 0)),
            _entry(TicketStatus.OPEN, TicketStatus.WAITING_REQUESTER, utc(2024, 1, 15, 20, 0)),
        ]

        # The pause happens after end_at
        assert calculate_elapsed_business_minutes(
            utc(2024, 1, 15, 12, 0), TicketStatus.OPEN, history, utc(2024, 1, 15, 14, 0), SCHEDULE
        ) == 120

    def test_history_in_any_order(self):
        history = [
            _entry(TicketStatus.WAITING_REQUESTER, TicketStatus.OPEN, utc(2024, 1, 15, 15, 0)),
            _entry(TicketStatus.OPEN, TicketStatus.WAITING_REQUESTER, utc(2024, 1, 15, 13, 0)),
        ]

        assert calculate_elapsed_business_minutes(
            utc(2024, 1, 15, 12, 0), TicketStatus.OPEN, history, utc(2024, 1, 15, 16, 0), SCHEDULE
        ) == 120

    def test_end_before_creation(self):
        assert calculate_elapsed_business_minutes(
            utc(2024, 1, 15, 12, 0), TicketStatus.OPEN, [], utc(2024, 1, 15, 11, 0), SCHEDULE
        ) == 0

    def test_initial_status(self):
        assert initial_status_from_history([]) == TicketStatus.OPEN
        assert initial_status_from_history([
            _entry(TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, utc(2024, 1, 15, 14, 0)),
            _entry(TicketStatus.WAITING_REQUESTER, TicketStatus.IN_PROGRESS, utc(2024, 1, 15, 13, 0)),
        ]) == TicketStatus.WAITING_REQUESTER
        assert initial_status_from_history([
            _entry(None, TicketStatus.IN_PROGRESS, utc(2024, 1, 15, 13, 0)),
        ]) == TicketStatus.IN_PROGRESS
