"""
Unit tests for enforcement rules.

Tests points accrual, violation status transitions, due dates and
identifier generation.
"""

import re
from datetime import datetime, timedelta, timezone

import pytest

from roadwatch.domain.exceptions import InvalidInputError
from roadwatch.domain.models import OwnerStatus, ViolationStatus, as_naive_utc
from roadwatch.domain.services import (
    DueDatePolicy,
    IdentifierGenerator,
    PointsPolicy,
    ViolationStateMachine,
)


class TestPointsPolicy:
    """Tests for points accrual and automatic suspension."""

    @pytest.fixture
    def policy(self) -> PointsPolicy:
        return PointsPolicy(threshold=12)

    def test_reaching_threshold_suspends(self, policy: PointsPolicy):
        """Test 10 + 2 points suspends an active owner."""
        outcome = policy.apply(10, OwnerStatus.ACTIVE, 2)

        assert outcome.current_points == 12
        assert outcome.status == OwnerStatus.SUSPENDED
        assert outcome.suspension_triggered is True

    def test_below_threshold(self, policy: PointsPolicy):
        outcome = policy.apply(5, OwnerStatus.ACTIVE, 3)

        assert outcome.current_points == 8
        assert outcome.status == OwnerStatus.ACTIVE
        assert outcome.suspension_triggered is False

    def test_points_clamped_at_zero(self, policy: PointsPolicy):
        outcome = policy.apply(2, OwnerStatus.ACTIVE, -10)

        assert outcome.current_points == 0
        assert outcome.suspension_triggered is False

    def test_already_suspended_not_retriggered(self, policy: PointsPolicy):
        """Test a suspended owner gains points without a second trigger."""
        outcome = policy.apply(14, OwnerStatus.SUSPENDED, 3)

        assert outcome.current_points == 17
        assert outcome.status == OwnerStatus.SUSPENDED
        assert outcome.suspension_triggered is False

    def test_revoked_owner_keeps_status(self, policy: PointsPolicy):
        outcome = policy.apply(11, OwnerStatus.REVOKED, 5)

        assert outcome.status == OwnerStatus.REVOKED
        assert outcome.suspension_triggered is False

    def test_removing_points_never_reinstates(self, policy: PointsPolicy):
        outcome = policy.apply(12, OwnerStatus.SUSPENDED, -12)

        assert outcome.current_points == 0
        assert outcome.status == OwnerStatus.SUSPENDED


class TestViolationStateMachine:
    """Tests for violation status transitions."""

    @pytest.fixture
    def machine(self) -> ViolationStateMachine:
        return ViolationStateMachine()

    def test_only_pending_can_be_contested(self, machine: ViolationStateMachine):
        assert machine.can_contest(ViolationStatus.PENDING) is True
        for status in ViolationStatus:
            if status != ViolationStatus.PENDING:
                assert machine.can_contest(status) is False

    @pytest.mark.parametrize(
        "current,new",
        [
            (ViolationStatus.PENDING, ViolationStatus.PAID),
            (ViolationStatus.PENDING, ViolationStatus.CONTESTED),
            (ViolationStatus.CONTESTED, ViolationStatus.DISMISSED),
            (ViolationStatus.COURT_PENDING, ViolationStatus.PENDING),
            (ViolationStatus.PARTIALLY_PAID, ViolationStatus.PAID),
        ],
    )
    def test_standard_transitions(self, machine, current, new):
        assert machine.is_standard_transition(current, new) is True

    @pytest.mark.parametrize(
        "current,new",
        [
            (ViolationStatus.PAID, ViolationStatus.PENDING),
            (ViolationStatus.DISMISSED, ViolationStatus.PENDING),
            (ViolationStatus.CONTESTED, ViolationStatus.PAID),
        ],
    )
    def test_non_standard_transitions(self, machine, current, new):
        assert machine.is_standard_transition(current, new) is False

    def test_every_status_has_an_entry(self, machine: ViolationStateMachine):
        assert set(machine.TRANSITIONS) == set(ViolationStatus)


class TestDueDatePolicy:
    """Tests for payment deadline resolution."""

    VIOLATION_DATE = datetime(2024, 3, 1, 9, 30)

    def test_default_is_grace_period(self):
        policy = DueDatePolicy(grace_days=30)

        assert policy.resolve(self.VIOLATION_DATE) == self.VIOLATION_DATE + timedelta(days=30)

    def test_later_date_is_kept(self):
        requested = self.VIOLATION_DATE + timedelta(days=45)

        assert DueDatePolicy().resolve(self.VIOLATION_DATE, requested) == requested

    def test_exact_boundary_accepted(self):
        requested = self.VIOLATION_DATE + timedelta(days=30)

        assert DueDatePolicy().resolve(self.VIOLATION_DATE, requested) == requested

    def test_early_date_rejected(self):
        """Test a due date inside the grace period is refused."""
        requested = self.VIOLATION_DATE + timedelta(days=10)

        with pytest.raises(InvalidInputError, match="at least 30 days"):
            DueDatePolicy().resolve(self.VIOLATION_DATE, requested)

    def test_custom_grace_period(self):
        policy = DueDatePolicy(grace_days=7)

        assert policy.resolve(self.VIOLATION_DATE) == datetime(2024, 3, 8, 9, 30)


    def test_offset_due_date_compares_after_conversion(self):
        requested = datetime(2024, 4, 1, 0, 0, tzinfo=timezone.utc)

        assert DueDatePolicy().resolve(self.VIOLATION_DATE, as_naive_utc(requested)) == datetime(
            2024, 4, 1, 0, 0
        )


class TestAsNaiveUtc:
    """Tests for normalizing incoming timestamps."""

    def test_offset_shifted_to_utc(self):
        lagos = timezone(timedelta(hours=1))

        assert as_naive_utc(datetime(2024, 1, 1, 10, 0, tzinfo=lagos)) == datetime(2024, 1, 1, 9, 0)

    def test_utc_loses_tzinfo(self):
        converted = as_naive_utc(datetime(2099, 1, 1, tzinfo=timezone.utc))

        assert converted == datetime(2099, 1, 1)
        assert converted.tzinfo is None

    def test_naive_unchanged(self):
        value = datetime(2024, 3, 1, 9, 30)

        assert as_naive_utc(value) is value

    def test_none(self):
        assert as_naive_utc(None) is None


class TestIdentifierGenerator:
    """Tests for ticket numbers and payment references."""

    @pytest.fixture
    def generator(self) -> IdentifierGenerator:
        return IdentifierGenerator()

    def test_ticket_number_format(self, generator: IdentifierGenerator):
        ticket = generator.ticket_number(datetime(2024, 1, 2, 3, 4, 5))

        assert re.fullmatch(r"TKT-20240102-030405-[0-9A-F]{6}", ticket)

    def test_payment_reference_format(self, generator: IdentifierGenerator):
        reference = generator.payment_reference()

        assert re.fullmatch(r"PAY_[0-9]{13,}_[0-9A-F]{8}", reference)

    def test_identifiers_vary(self, generator: IdentifierGenerator):
        """Test the random suffix differs between calls."""
        now = datetime(2024, 1, 2, 3, 4, 5)
        tickets = {generator.ticket_number(now) for _ in range(20)}
        references = {generator.payment_reference() for _ in range(20)}

        assert len(tickets) > 1
        assert len(references) > 1
