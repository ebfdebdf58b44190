"""
Domain services for plate matching and enforcement rules.

These services contain pure business logic with no infrastructure
dependencies. They can be easily unit tested.
"""

import re
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import ClassVar

from roadwatch.domain.exceptions import InvalidInputError
from roadwatch.domain.models import (
    FuzzyMatchResult,
    OwnerStatus,
    PlateCategory,
    PlateFormat,
    PlateValidationResult,
    ViolationStatus,
    utcnow,
)

_SECOND_LETTERS = "ABCDEFGHIJKLMNOPQRST"

# Row A is irregular; every other row pairs its letter with A..T
_ROW_A_CODES = (
    "AA", "AB", "AD", "AE", "AH", "AJ", "AK", "AL", "AM", "AN",
    "AO", "AP", "AR", "AS", "AT", "AU", "AW", "AX", "AY", "AZ",
)
_REGULAR_ROWS = "BCDEFGHJKLMNOPRSTYZ"

STATE_CODES: frozenset[str] = frozenset(_ROW_A_CODES) | frozenset(
    row + second for row in _REGULAR_ROWS for second in _SECOND_LETTERS
)


@dataclass
class PlateMatcher:
    """
    Normalizes, validates and fuzzy-matches Nigerian plate numbers.

    Every method is total: a malformed plate yields a negative result,
    never an exception.

    Example:
        >>> matcher = PlateMatcher()
        >>> matcher.normalize(" ab123cd ")
        'AB-123-CD'
        >>> matcher.classify("AB-123-CD")
        <PlateCategory.PRIVATE: 'private'>
    """

    # Ordered; the first matching format wins
    FORMATS: ClassVar[tuple[PlateFormat, ...]] = (
        PlateFormat(
            name="current",
            pattern=r"[A-Z]{3}-[0-9]{3}-[A-Z]{2}",
            description="Current format (3 letters, 3 digits, 2 letters)",
            example="ABC-123-DE",
            category=PlateCategory.PRIVATE,
            checks_state_code=True,
        ),
        PlateFormat(
            name="legacy",
            pattern=r"[A-Z]{2,3}-[0-9]{3}-[A-Z]{1,2}",
            description="Pre-2011 format (2-3 letters, 3 digits, 1-2 letters)",
            example="AB-123-CD",
            category=PlateCategory.PRIVATE,
            checks_state_code=True,
        ),
        PlateFormat(
            name="commercial",
            pattern=r"[A-Z]{3}-[0-9]{3}-[A-Z]{2}",
            description="Commercial vehicle format",
            example="COM-123-XY",
            category=PlateCategory.COMMERCIAL,
            checks_state_code=True,
        ),
        PlateFormat(
            name="government",
            pattern=r"[A-Z]{3,6}-[0-9]{3}",
            description="Government vehicle format",
            example="ABUJA-123",
            category=PlateCategory.GOVERNMENT,
        ),
        PlateFormat(
            name="diplomatic",
            pattern=r"CD-[0-9]{3}-[A-Z]",
            description="Diplomatic vehicle format",
            example="CD-123-A",
            category=PlateCategory.DIPLOMATIC,
        ),
        PlateFormat(
            name="military",
            pattern=r"MIL-[0-9]{3}",
            description="Military vehicle format",
            example="MIL-123",
            category=PlateCategory.MILITARY,
        ),
        PlateFormat(
            name="no_hyphen",
            pattern=r"[A-Z]{2}[0-9]{3}[A-Z]{2}",
            description="Old format without hyphens",
            example="AB123CD",
            category=PlateCategory.PRIVATE,
            checks_state_code=True,
        ),
    )

    STATE_CODES: ClassVar[frozenset[str]] = STATE_CODES

    # Characters optical readers commonly confuse; each group is symmetric
    CONFUSABLE_GROUPS: ClassVar[tuple[str, ...]] = (
        "0ODQ",
        "I1LT",
        "5SG",
        "B8R",
        "6GC",
        "2ZR",
    )

    MAX_SUGGESTIONS: ClassVar[int] = 5
    DEFAULT_THRESHOLD: ClassVar[float] = 0.7
    SUGGESTION_MARGIN: ClassVar[float] = 0.2

    _SHORT_LEGACY: ClassVar[re.Pattern[str]] = re.compile(r"[A-Z]{2}[0-9]{3}[A-Z]{2}")
    _LONG_LEGACY: ClassVar[re.Pattern[str]] = re.compile(r"[A-Z]{3}[0-9]{3}[A-Z]{2}")
    _WHITESPACE: ClassVar[re.Pattern[str]] = re.compile(r"\s+")

    def normalize(self, raw: str) -> str:
        """
        Canonicalize case, whitespace and hyphenation.

        ``AA999AA`` becomes ``AA-999-AA`` and ``AAA999AA`` becomes
        ``AAA-999-AA``; any other shape passes through stripped and
        uppercased.

        Args:
            raw: Plate string as typed or read by a camera.

        Returns:
            str: Normalized plate (empty string for empty input).
        """
        if not raw:
            return ""

        plate = self._WHITESPACE.sub("", raw).upper()

        if self._SHORT_LEGACY.fullmatch(plate):
            return f"{plate[:2]}-{plate[2:5]}-{plate[5:]}"
        if self._LONG_LEGACY.fullmatch(plate):
            return f"{plate[:3]}-{plate[3:6]}-{plate[6:]}"
        return plate

    def validate(self, raw: str) -> PlateValidationResult:
        """
        Validate a plate against the recognized formats.

        A format whose state-code check fails records an error and
        matching moves on to the next format.

        Args:
            raw: Plate string, normalized first.

        Returns:
            PlateValidationResult: Match details or aggregated errors.
        """
        normalized = self.normalize(raw)
        if not normalized:
            return PlateValidationResult(
                is_valid=False,
                normalized=normalized,
                errors=("Plate number is required",),
            )

        errors: list[str] = []
        for plate_format in self.FORMATS:
            if not re.fullmatch(plate_format.pattern, normalized):
                continue

            if plate_format.checks_state_code:
                state_code = normalized[:2]
                if state_code not in self.STATE_CODES:
                    errors.append(f"Invalid state code: {state_code}")
                    continue

            return PlateValidationResult(
                is_valid=True,
                normalized=normalized,
                matched_format=plate_format,
            )

        errors.append("Invalid Nigerian plate number format")
        errors.append(
            "Expected formats: " + ", ".join(f.example for f in self.FORMATS)
        )
        return PlateValidationResult(
            is_valid=False,
            normalized=normalized,
            errors=tuple(errors),
        )

    def is_valid(self, raw: str) -> bool:
        return self.validate(raw).is_valid

    def classify(self, plate_number: str) -> PlateCategory:
        """Category of the validating format, UNKNOWN when invalid."""
        return self.validate(plate_number).category

    def is_commercial(self, plate_number: str) -> bool:
        return self.classify(plate_number) == PlateCategory.COMMERCIAL

    def is_government(self, plate_number: str) -> bool:
        return self.classify(plate_number) in {
            PlateCategory.GOVERNMENT,
            PlateCategory.MILITARY,
            PlateCategory.DIPLOMATIC,
        }

    def similarity(self, first: str, second: str) -> float:
        """
        Normalized Levenshtein similarity, ``(maxLen - distance) / maxLen``.

        Two empty strings are identical (1.0); exactly one empty string
        scores 0.0.
        """
        if not first:
            return 1.0 if not second else 0.0
        if not second:
            return 0.0

        distance = self._levenshtein(first, second)
        max_length = max(len(first), len(second))
        return (max_length - distance) / max_length

    def fuzzy_match(
        self,
        input_plate: str,
        target_plate: str,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> FuzzyMatchResult:
        """
        Compare an input plate with a stored plate.

        When the similarity is within ``SUGGESTION_MARGIN`` of the
        threshold, single-character corrections of the input are offered,
        valid plates first.

        Args:
            input_plate: Possibly damaged plate string.
            target_plate: Plate to compare with.
            threshold: Minimum similarity for a match.

        Returns:
            FuzzyMatchResult: Match flag, similarity and suggestions.
        """
        normalized_input = self.normalize(input_plate)
        normalized_target = self.normalize(target_plate)

        similarity = self.similarity(normalized_input, normalized_target)

        suggestions: tuple[str, ...] = ()
        if similarity > threshold - self.SUGGESTION_MARGIN:
            suggestions = self.suggest_corrections(normalized_input)

        return FuzzyMatchResult(
            is_match=similarity >= threshold,
            similarity=similarity,
            suggestions=suggestions,
        )

    def suggest_corrections(self, plate_number: str) -> tuple[str, ...]:
        """
        Single-character substitutions from the confusable groups.

        Args:
            plate_number: Normalized plate.

        Returns:
            tuple: Up to ``MAX_SUGGESTIONS`` distinct candidates.
        """
        candidates: list[str] = []
        seen: set[str] = set()

        for index, char in enumerate(plate_number):
            for replacement in self._confusables(char):
                candidate = plate_number[:index] + replacement + plate_number[index + 1:]
                if candidate not in seen:
                    seen.add(candidate)
                    candidates.append(candidate)

        # sorted() is stable, so generation order holds within each group
        ranked = sorted(candidates, key=lambda c: not self.is_valid(c))
        return tuple(ranked[: self.MAX_SUGGESTIONS])

    def _confusables(self, char: str) -> list[str]:
        replacements: list[str] = []
        for group in self.CONFUSABLE_GROUPS:
            if char in group:
                replacements.extend(c for c in group if c != char and c not in replacements)
        return replacements

    @staticmethod
    def _levenshtein(first: str, second: str) -> int:
        previous = list(range(len(second) + 1))
        for i, a in enumerate(first, start=1):
            current = [i]
            for j, b in enumerate(second, start=1):
                current.append(
                    min(
                        previous[j] + 1,
                        current[j - 1] + 1,
                        previous[j - 1] + (a != b),
                    )
                )
            previous = current
        return previous[-1]


@dataclass(frozen=True)
class PointsOutcome:
    """Result of applying a points delta to a vehicle owner."""

    current_points: int
    status: OwnerStatus
    suspension_triggered: bool


@dataclass
class PointsPolicy:
    """
    Penalty point accrual and automatic suspension.

    Points never go below zero. An ACTIVE owner reaching the threshold is
    SUSPENDED; nothing here ever reinstates one.

    Example:
        >>> policy = PointsPolicy(threshold=12)
        >>> policy.apply(10, OwnerStatus.ACTIVE, 2)
        PointsOutcome(current_points=12, status=<OwnerStatus.SUSPENDED: 'suspended'>, suspension_triggered=True)
    """

    threshold: int = 12

    def apply(self, current_points: int, status: OwnerStatus, delta: int) -> PointsOutcome:
        new_points = max(0, current_points + delta)

        if status == OwnerStatus.ACTIVE and new_points >= self.threshold:
            return PointsOutcome(new_points, OwnerStatus.SUSPENDED, True)

        return PointsOutcome(new_points, status, False)


@dataclass
class ViolationStateMachine:
    """
    Violation status transitions.

    Only contesting is enforced strictly; other changes made by an
    authorized actor are allowed but can be checked against the table.
    """

    TRANSITIONS: ClassVar[dict[ViolationStatus, frozenset[ViolationStatus]]] = {
        ViolationStatus.PENDING: frozenset({
            ViolationStatus.PAID,
            ViolationStatus.PARTIALLY_PAID,
            ViolationStatus.CONTESTED,
            ViolationStatus.DISMISSED,
            ViolationStatus.COURT_PENDING,
        }),
        ViolationStatus.CONTESTED: frozenset({
            ViolationStatus.DISMISSED,
            ViolationStatus.COURT_PENDING,
            ViolationStatus.PENDING,
        }),
        ViolationStatus.PARTIALLY_PAID: frozenset({ViolationStatus.PAID}),
        ViolationStatus.COURT_PENDING: frozenset({
            ViolationStatus.DISMISSED,
            ViolationStatus.PENDING,
        }),
        ViolationStatus.PAID: frozenset(),
        ViolationStatus.DISMISSED: frozenset(),
    }

    def is_standard_transition(self, current: ViolationStatus, new: ViolationStatus) -> bool:
        return new in self.TRANSITIONS[current]

    def can_contest(self, current: ViolationStatus) -> bool:
        return current == ViolationStatus.PENDING


@dataclass
class DueDatePolicy:
    """Payment deadline rule: at least ``grace_days`` after the violation."""

    grace_days: int = 30

    def resolve(self, violation_date: datetime, requested: datetime | None = None) -> datetime:
        """
        Pick the due date for a violation.

        Raises:
            InvalidInputError: If ``requested`` falls inside the grace period.
        """
        earliest = violation_date + timedelta(days=self.grace_days)
        if requested is None:
            return earliest
        if requested < earliest:
            raise InvalidInputError(
                f"Due date must be at least {self.grace_days} days after the violation date"
            )
        return requested


@dataclass
class IdentifierGenerator:
    """
    Collision-resistant ticket numbers and payment references.

    A timestamp keeps identifiers sortable and a ``secrets`` suffix makes
    same-instant collisions unlikely; callers still check the store and
    retry before inserting.
    """

    ticket_suffix_bytes: int = 3
    reference_suffix_bytes: int = 4

    def ticket_number(self, now: datetime | None = None) -> str:
        now = now or utcnow()
        suffix = secrets.token_hex(self.ticket_suffix_bytes).upper()
        return f"TKT-{now:%Y%m%d-%H%M%S}-{suffix}"

    def payment_reference(self) -> str:
        millis = time.time_ns() // 1_000_000
        suffix = secrets.token_hex(self.reference_suffix_bytes).upper()
        return f"PAY_{millis}_{suffix}"
