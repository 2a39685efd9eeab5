"""
Unit tests for Pydantic schemas and validation.
Tests input validation, alias handling and filter predicates.
"""
import pytest
from pydantic import ValidationError
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.models.match import SwipeDirection
from app.models.profile import BusinessType, VerificationLevel
from app.schemas.matching import FilterCriteria, SwipeRequest

from conftest import make_entrepreneur, make_funder


class TestFilterCriteria:
    """Tests for FilterCriteria validation."""

    def test_empty_is_valid(self):
        criteria = FilterCriteria()
        assert criteria.industries is None
        assert criteria.matches(make_funder()) is True

    def test_camel_case_keys(self):
        criteria = FilterCriteria.model_validate({
            "minInvestment": 1000,
            "maxInvestment": 5000,
            "minTeamSize": 2,
            "verificationLevels": ["FiscalAnalysis"],
            "businessTypes": ["B2C"],
            "minExperienceYears": 3,
        })
        assert criteria.min_investment == 1000
        assert criteria.max_team_size is None
        assert criteria.verification_levels == [VerificationLevel.FISCAL_ANALYSIS]
        assert criteria.business_types == [BusinessType.B2C]
        assert criteria.min_experience_years == 3

    def test_snake_case_keys_accepted(self):
        assert FilterCriteria(min_investment=10).min_investment == 10

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            FilterCriteria.model_validate({"favouriteColour": "blue"})

    def test_investment_range_order(self):
        with pytest.raises(ValidationError) as exc_info:
            FilterCriteria(min_investment=5000, max_investment=1000)
        assert "min_investment" in str(exc_info.value)

    def test_team_size_range_order(self):
        with pytest.raises(ValidationError):
            FilterCriteria(min_team_size=10, max_team_size=2)

    def test_negative_investment_rejected(self):
        with pytest.raises(ValidationError):
            FilterCriteria(min_investment=-1)

    def test_unknown_timeline_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            FilterCriteria(timelines=["next week"])
        assert "next week" in str(exc_info.value)

    def test_timelines_normalized(self):
        assert FilterCriteria(timelines=[" 6-12 Months"]).timelines == ["6-12 months"]

    def test_blank_industries_dropped(self):
        assert FilterCriteria(industries=[" AI ", "", "  "]).industries == ["AI"]

    def test_frozen(self):
        criteria = FilterCriteria(location="Berlin")
        with pytest.raises(ValidationError):
            criteria.location = "Paris"

    def test_invalid_verification_level(self):
        with pytest.raises(ValidationError):
            FilterCriteria.model_validate({"verificationLevels": ["Platinum"]})


class TestFilterCriteriaMatches:
    """Tests for the FilterCriteria predicate."""

    def test_industries_any_overlap(self):
        criteria = FilterCriteria(industries=["fintech", "Health"])
        assert criteria.matches(make_entrepreneur(industry_list=["Technology", "Fintech"])) is True
        assert criteria.matches(make_entrepreneur(industry_list=["Retail"])) is False

    def test_investment_bounds_inclusive(self):
        criteria = FilterCriteria(min_investment=500000, max_investment=500000)
        assert criteria.matches(make_entrepreneur(desired_investment=500000)) is True
        assert criteria.matches(make_entrepreneur(desired_investment=500001)) is False

    def test_business_type(self):
        criteria = FilterCriteria(business_types=[BusinessType.B2B])
        assert criteria.matches(make_entrepreneur(declared_business_type=BusinessType.B2B)) is True
        assert criteria.matches(make_entrepreneur(declared_business_type=BusinessType.B2C)) is False
        # Funders declare no business type of their own
        assert criteria.matches(make_funder()) is False

    def test_min_experience(self):
        criteria = FilterCriteria(min_experience_years=10)
        assert criteria.matches(make_funder(experience_years=12)) is True
        assert criteria.matches(make_entrepreneur(experience_years=5)) is False

    def test_missing_timeline_fails_timeline_filter(self):
        criteria = FilterCriteria(timelines=["immediate"])
        assert criteria.matches(make_entrepreneur(funding_timeline=None)) is False

    def test_all_fields_combined(self):
        criteria = FilterCriteria(
            industries=["Technology"],
            min_investment=100000,
            max_team_size=5,
            timelines=["0-6 months"],
            location="berlin",
            verification_levels=[VerificationLevel.USE_CASE],
        )
        assert criteria.matches(make_entrepreneur()) is True
        assert criteria.matches(make_entrepreneur(location="Paris")) is False


class TestSwipeRequest:
    """Tests for SwipeRequest validation."""

    def test_valid_request(self):
        request = SwipeRequest.model_validate({"targetUserId": "funder-1", "direction": "right"})
        assert request.target_user_id == "funder-1"
        assert request.direction == SwipeDirection.RIGHT

    def test_field_name_accepted(self):
        request = SwipeRequest(target_user_id="funder-1", direction="left")
        assert request.direction == SwipeDirection.LEFT

    def test_invalid_direction(self):
        with pytest.raises(ValidationError):
            SwipeRequest.model_validate({"targetUserId": "funder-1", "direction": "up"})

    def test_empty_target_rejected(self):
        with pytest.raises(ValidationError):
            SwipeRequest.model_validate({"targetUserId": "", "direction": "right"})

    def test_missing_target_rejected(self):
        with pytest.raises(ValidationError):
            SwipeRequest.model_validate({"direction": "right"})
