"""
Unit tests for the compatibility scorer.
Tests each factor, the weighted total and the generated reasons.
"""
import math
import pytest
import sys
import os
from datetime import timedelta

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.adapters.memory import InMemoryEngagementHistory
from app.models.match import Engagement
from app.models.profile import BusinessType, Skill, VerificationLevel
from app.services.compatibility_scorer import CompatibilityScorer, jaccard
from app.services.industry_relationship_cache import IndustryRelationshipCache
from app.services.matching_config import ScoringWeights

from conftest import NOW, make_entrepreneur, make_funder


@pytest.fixture
def scorer():
    return CompatibilityScorer(IndustryRelationshipCache(InMemoryEngagementHistory()))


class TestScoringWeights:
    """Tests for weight configuration."""

    def test_default_weights_sum_to_one(self):
        assert math.isclose(sum(ScoringWeights().as_dict().values()), 1.0)

    def test_default_weight_values(self):
        weights = ScoringWeights()
        assert weights.industry_alignment == 0.25
        assert weights.investment_fit == 0.20
        assert weights.experience_match == 0.15
        assert weights.verification_level == 0.15
        assert weights.success_history == 0.10
        assert weights.team_compatibility == 0.05
        assert weights.business_model_fit == 0.05
        assert weights.timeline_alignment == 0.05

    def test_weights_not_summing_to_one_rejected(self):
        with pytest.raises(ValueError):
            ScoringWeights(industry_alignment=0.5)

    def test_negative_weight_rejected(self):
        with pytest.raises(ValueError):
            ScoringWeights(industry_alignment=0.5, timeline_alignment=-0.2)

    def test_weights_from_environment(self):
        from unittest.mock import patch
        with patch.dict(os.environ, {'WEIGHT_INDUSTRY_ALIGNMENT': '0.30', 'WEIGHT_INVESTMENT_FIT': '0.15'}):
            weights = ScoringWeights.from_env()
        assert weights.industry_alignment == 0.30
        assert weights.investment_fit == 0.15


class TestIndustryAlignment:
    """Tests for industry alignment."""

    def test_jaccard_is_case_insensitive(self):
        assert jaccard(["Technology"], ["technology "]) == 1.0

    def test_jaccard_empty_sets(self):
        assert jaccard([], []) == 0.0

    def test_symmetric(self, scorer):
        entrepreneur = make_entrepreneur(industry_list=["Technology", "Fintech", "Health"])
        funder = make_funder(areas_of_interest=["Fintech", "Energy"])
        assert scorer.industry_alignment(entrepreneur, funder) == scorer.industry_alignment(funder, entrepreneur)

    def test_identical_industries_at_least_point_seven(self, scorer):
        entrepreneur = make_entrepreneur(industry_list=["AI", "Robotics"])
        funder = make_funder(areas_of_interest=["Robotics", "AI"])
        assert scorer.industry_alignment(entrepreneur, funder) >= 0.7

    def test_disjoint_industries_use_affinity_only(self, scorer):
        entrepreneur = make_entrepreneur(industry_list=["Retail"])
        funder = make_funder(areas_of_interest=["Energy"])
        assert scorer.industry_alignment(entrepreneur, funder) == pytest.approx(0.15)

    def test_historical_engagement_raises_affinity(self):
        history = InMemoryEngagementHistory()
        history.add(["Retail"], ["Energy"], Engagement(message_count=100, duration_seconds=90 * 24 * 3600))
        scorer = CompatibilityScorer(IndustryRelationshipCache(history))

        entrepreneur = make_entrepreneur(industry_list=["Retail"])
        funder = make_funder(areas_of_interest=["Energy"])
        assert scorer.industry_alignment(entrepreneur, funder) == pytest.approx(0.3)


class TestInvestmentFit:
    """Tests for investment fit."""

    def test_exponential_proximity(self, scorer):
        entrepreneur = make_entrepreneur(desired_investment=500000)
        funder = make_funder(available_funds=450000)
        assert scorer.investment_fit(entrepreneur, funder) == pytest.approx(math.exp(-50000 / 450000))

    def test_order_independent(self, scorer):
        entrepreneur = make_entrepreneur()
        funder = make_funder()
        assert scorer.investment_fit(entrepreneur, funder) == scorer.investment_fit(funder, entrepreneur)

    def test_above_funder_maximum_scores_zero(self, scorer):
        entrepreneur = make_entrepreneur(desired_investment=2000000)
        funder = make_funder(available_funds=5000000, max_investment=1000000)
        assert scorer.investment_fit(entrepreneur, funder) == 0.0

    def test_below_funder_minimum_scores_zero(self, scorer):
        entrepreneur = make_entrepreneur(desired_investment=50000)
        funder = make_funder(min_investment=100000)
        assert scorer.investment_fit(entrepreneur, funder) == 0.0

    def test_no_available_funds_scores_zero(self, scorer):
        entrepreneur = make_entrepreneur()
        funder = make_funder(available_funds=0)
        assert scorer.investment_fit(entrepreneur, funder) == 0.0

    def test_same_kind_pair_is_neutral(self, scorer):
        assert scorer.investment_fit(make_entrepreneur(), make_entrepreneur()) == 0.5


class TestOtherFactors:
    """Tests for experience, verification, success, team, business model and timeline."""

    def test_experience_funder_bonus(self, scorer):
        entrepreneur = make_entrepreneur(experience_years=5)
        funder = make_funder(experience_years=12)
        assert scorer.experience_match(entrepreneur, funder) == pytest.approx(math.exp(-0.7) + 0.2)

    def test_experience_no_bonus_when_entrepreneur_more_experienced(self, scorer):
        entrepreneur = make_entrepreneur(experience_years=15)
        funder = make_funder(experience_years=5)
        assert scorer.experience_match(entrepreneur, funder) == pytest.approx(math.exp(-1.0))

    def test_experience_clamped_to_one(self, scorer):
        entrepreneur = make_entrepreneur(experience_years=10)
        funder = make_funder(experience_years=10.5)
        assert scorer.experience_match(entrepreneur, funder) == 1.0

    def test_verification_blends_level_and_gap(self, scorer):
        viewer = make_entrepreneur(verification_level=VerificationLevel.USE_CASE)
        candidate = make_funder(verification_level=VerificationLevel.FISCAL_ANALYSIS)
        assert scorer.verification_score(viewer, candidate) == pytest.approx(0.7 * 1.0 + 0.3 * 0.5)

    def test_verification_unverified_pair(self, scorer):
        viewer = make_entrepreneur(verification_level=VerificationLevel.NONE)
        candidate = make_funder(verification_level=VerificationLevel.NONE)
        assert scorer.verification_score(viewer, candidate) == pytest.approx(0.3)

    def test_success_history_saturates(self, scorer):
        candidate = make_funder(last_active_at=NOW)
        assert scorer.success_history(candidate, 12, NOW) == pytest.approx(1.0)

    def test_success_history_activity_falls_back_to_account_age(self, scorer):
        candidate = make_funder(
            verification_level=VerificationLevel.NONE,
            created_at=NOW - timedelta(days=365),
            last_active_at=None,
        )
        assert scorer.success_history(candidate, 0, NOW) == pytest.approx(0.2)

    def test_skills_complementarity(self, scorer):
        a = make_entrepreneur(skills=[Skill("python", "engineering")])
        b = make_funder(skills=[Skill("python", "engineering"), Skill("go", "engineering")])
        assert scorer.skills_complementarity(a, b) == pytest.approx(0.5)

        c = make_funder(skills=[Skill("figma", "design")])
        assert scorer.skills_complementarity(a, c) == pytest.approx(1.0)

    def test_skills_missing_is_neutral(self, scorer):
        assert scorer.skills_complementarity(make_entrepreneur(), make_funder()) == 0.5

    def test_team_compatibility(self, scorer):
        entrepreneur = make_entrepreneur(team_size=4)
        funder = make_funder(team_size=3)
        assert scorer.team_compatibility(entrepreneur, funder) == pytest.approx(0.4 * math.exp(-0.2) + 0.3)

    def test_business_model_full_alignment(self, scorer):
        assert scorer.business_model_fit(make_entrepreneur(), make_funder()) == pytest.approx(1.0)

    def test_business_model_type_mismatch(self, scorer):
        entrepreneur = make_entrepreneur(declared_business_type=BusinessType.B2C, target_market_size="small")
        funder = make_funder(preferred_market_size="enterprise")
        assert scorer.business_model_fit(entrepreneur, funder) == pytest.approx(0.4 * 0.25)

    def test_business_model_missing_data_is_neutral(self, scorer):
        entrepreneur = make_entrepreneur(declared_business_type=None)
        assert scorer.business_model_fit(entrepreneur, make_funder()) == 0.5

    def test_timeline_alignment(self, scorer):
        entrepreneur = make_entrepreneur(funding_timeline="immediate")
        funder = make_funder(preferred_timeline="1-2 years")
        assert scorer.timeline_alignment(entrepreneur, funder) == pytest.approx(0.4)

    def test_timeline_missing_is_neutral(self, scorer):
        entrepreneur = make_entrepreneur(funding_timeline=None)
        assert scorer.timeline_alignment(entrepreneur, make_funder()) == 0.5


class TestTotalScore:
    """Tests for the weighted total and reasons."""

    def test_technology_fintech_scenario(self, scorer):
        """Entrepreneur raising 500k vs funder with 450k available."""
        entrepreneur = make_entrepreneur(industry_list=["Technology", "Fintech"], desired_investment=500000)
        funder = make_funder(
            areas_of_interest=["Technology"],
            available_funds=450000,
            min_investment=100000,
            max_investment=1000000,
        )

        result = scorer.score(entrepreneur, funder, now=NOW)

        assert result.sub_scores["industry_alignment"] == pytest.approx(0.5)
        assert result.sub_scores["investment_fit"] == pytest.approx(0.895, abs=1e-3)
        assert 0.0 < result.total < 1.0
        assert "Strong investment alignment with Fred Funder" in result.reasons

    def test_total_is_weighted_sum(self, scorer):
        entrepreneur = make_entrepreneur()
        funder = make_funder()
        result = scorer.score(entrepreneur, funder, successful_matches=2, now=NOW)

        weights = ScoringWeights().as_dict()
        expected = sum(result.sub_scores[name] * weights[name] for name in weights)
        assert result.total == pytest.approx(expected)

    @pytest.mark.parametrize("overrides", [
        {},
        {"desired_investment": 0},
        {"industry_list": []},
        {"experience_years": 60, "team_size": 500},
    ])
    def test_total_within_bounds(self, scorer, overrides):
        result = scorer.score(make_entrepreneur(**overrides), make_funder(), successful_matches=100, now=NOW)
        assert 0.0 <= result.total <= 1.0
        assert all(0.0 <= value <= 1.0 for value in result.sub_scores.values())

    def test_adjustment_strategy_multiplies_factor(self):
        class DropInvestment:
            def adjustments(self, viewer_id, candidate_id):
                return {"investment_fit": 0.0}

        cache = IndustryRelationshipCache(InMemoryEngagementHistory())
        plain = CompatibilityScorer(cache).score(make_entrepreneur(), make_funder(), now=NOW)
        adjusted = CompatibilityScorer(cache, adjustment_strategy=DropInvestment()).score(
            make_entrepreneur(), make_funder(), now=NOW
        )
        assert adjusted.total == pytest.approx(plain.total - plain.sub_scores["investment_fit"] * 0.20)

    def test_industry_reason_lists_first_three_shared(self, scorer):
        shared = ["AI", "Robotics", "Health", "Energy"]
        entrepreneur = make_entrepreneur(industry_list=shared)
        funder = make_funder(areas_of_interest=list(shared))

        result = scorer.score(entrepreneur, funder, now=NOW)
        assert result.reasons[0] == "Aligned industries: AI, Robotics, Health and more"

    def test_reasons_follow_factor_order(self, scorer):
        entrepreneur = make_entrepreneur(industry_list=["AI"], experience_years=10)
        funder = make_funder(areas_of_interest=["AI"], experience_years=11, available_funds=500000)

        reasons = scorer.score(entrepreneur, funder, now=NOW).reasons
        assert reasons[0] == "Aligned industries: AI"
        assert reasons[1] == "Strong investment alignment with Fred Funder"
        assert reasons[2] == "Highly compatible experience levels"
        assert reasons[-1] == "Highly aligned investment timelines"

    def test_complementary_experience_reason(self, scorer):
        entrepreneur = make_entrepreneur(experience_years=5)
        funder = make_funder(experience_years=12)
        reasons = scorer.score(entrepreneur, funder, now=NOW).reasons
        assert "Complementary experience levels" in reasons
        assert "Highly compatible experience levels" not in reasons
