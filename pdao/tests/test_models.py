# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for backend record parsing.
"""

import pytest
from datetime import date
from pydantic import ValidationError

from pdao.models.base import coerce_age, coerce_count, coerce_flag, coerce_number
from pdao.models.entities import Claim, Member, Participant, age_on
from pdao.models.requests import CreateBenefitRequest, OpenScanSessionRequest


class TestMember:
    """Test member parsing."""

    def test_profile_fields_are_flattened(self, sample_members):
        """Fields nested under member_profile are lifted onto the member."""
        member = Member.model_validate(sample_members[0])

        assert member.id == "1"
        assert member.id_number == "PWD-0001"
        assert member.severity == "severe"
        assert member.monthly_income == 2500.0
        assert member.is_solo_parent is True
        assert member.full_name == "Ana Reyes"
        assert member.is_approved() is True

    def test_top_level_fields_win(self):
        """Top-level values are kept over profile values."""
        member = Member.model_validate({
            "id": 7, "barangay": "Top", "member_profile": {"barangay": "Nested"},
        })

        assert member.barangay == "Top"

    def test_malformed_numbers_are_absent(self):
        """Malformed income and counts become None instead of failing."""
        member = Member.model_validate({
            "id": 1, "monthly_income": "n/a", "dependants": "two", "age": -4,
        })

        assert member.monthly_income is None
        assert member.dependants is None
        assert member.age is None

    def test_age_derived_from_birthdate(self):
        """A birthdate fills in a missing age."""
        member = Member.model_validate({"id": 1, "birthdate": "1950-01-01"})

        assert member.birthdate == date(1950, 1, 1)
        assert member.age >= 70

    def test_missing_status_is_pending(self):
        """Unreviewed members are pending and not approved."""
        member = Member.model_validate({"id": 1, "status": None})

        assert member.status == "pending"
        assert member.is_approved() is False

    def test_id_required(self):
        """Records without an id are rejected."""
        with pytest.raises(ValidationError):
            Member.model_validate({"first_name": "No Id"})

    def test_full_name_falls_back_to_username(self):
        """Username is shown when no name parts exist."""
        assert Member(id="1", username="jdoe").full_name == "jdoe"


class TestRecords:
    """Test participant and claim parsing."""

    def test_participant_claim_flag_aliases(self):
        """The claimed flag arrives under several names."""
        participant = Participant.model_validate({"benefit_id": 3, "user_id": 8, "claimed": "1"})

        assert participant.benefit_id == "3"
        assert participant.user_id == "8"
        assert participant.has_claimed is True

    def test_claim_amount_alias(self):
        """Claim amounts arrive as decimal strings."""
        claim = Claim.model_validate({"user_id": 4, "amount_received": "1500.00"})

        assert claim.amount == 1500.0


class TestRequests:
    """Test request models."""

    def test_selected_members_normalized(self):
        """Member ids are normalized to strings."""
        request = CreateBenefitRequest(name=" Aid ", type="cash", per_participant_amount=10,
                                       selected_members=[1, "2", None, ""])

        assert request.name == "Aid"
        assert request.selected_members == ["1", "2"]

    def test_blank_name_rejected(self):
        """Whitespace-only names are rejected."""
        with pytest.raises(ValidationError):
            CreateBenefitRequest(name="   ", type="cash")

    def test_scan_target_type_validated(self):
        """Only benefits and events can be scanned against."""
        with pytest.raises(ValidationError):
            OpenScanSessionRequest(target_type="raffle", target_id="1")

        assert OpenScanSessionRequest(target_type="event", target_id=5).target_id == "5"


class TestCoercion:
    """Test field coercion helpers."""

    @pytest.mark.parametrize("value,expected", [
        ("1,250.50", 1250.5), (True, None), ("nan", None), ("inf", None), ("", None), (7, 7.0),
    ])
    def test_coerce_number(self, value, expected):
        """Numbers parse leniently; booleans and non-finite values do not."""
        assert coerce_number(value) == expected

    def test_coerce_count(self):
        """Counts must be non-negative whole numbers."""
        assert coerce_count("3") == 3
        assert coerce_count(2.5) is None
        assert coerce_count(-1) is None

    def test_coerce_age(self):
        """Ages are floored to whole years; negatives are absent."""
        assert coerce_age("60.5") == 60
        assert coerce_age(42) == 42
        assert coerce_age(-3) is None
        assert coerce_age("unknown") is None

    @pytest.mark.parametrize("value,expected", [
        (1, True), (0, False), ("true", True), ("Yes", True), ("0", False), (None, False),
    ])
    def test_coerce_flag(self, value, expected):
        """Flags accept booleans, numbers and strings."""
        assert coerce_flag(value) is expected

    def test_age_on_birthday_boundary(self):
        """Age increments on the birthday itself."""
        assert age_on(date(1965, 6, 1), date(2025, 5, 31)) == 59
        assert age_on(date(1965, 6, 1), date(2025, 6, 1)) == 60
