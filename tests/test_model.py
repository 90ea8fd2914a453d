import itertools
import math
from datetime import date

import pytest

from errors import InvalidInput
from model import (
    calculate_fire_metrics,
    calculate_lifestyle_inflation_adjustment,
    calculate_safe_withdrawal_rate,
    calculate_savings_gap,
    compute_fire_metrics,
    future_value_of_savings,
    get_corpus_multiplier,
    get_fire_target_year,
    get_lia_breakdown,
    get_recommended_allocation,
    project_corpus_timeline,
    years_until,
)
from schemas import FireInputs

MONTHLY_RATE = 1.12 ** (1 / 12) - 1


@pytest.fixture
def scenario():
    """30 -> 45, no net worth yet, saving half of a 1L income, LIA pinned at 10."""
    return calculate_fire_metrics(
        current_age=30,
        fire_age=45,
        current_monthly_expense=50000,
        current_net_worth=0,
        monthly_savings=50000,
        household_income=100000,
        lia=10,
    )


# ==================== LIA ====================

class TestLifestyleInflationAdjustment:
    def test_bounds(self):
        ages = [18, 25, 30, 31, 35, 40, 45, 50, 51, 65]
        dependents = range(0, 11)
        rates = [-20, 0, 9.9, 10, 25, 35, 45, 50, 80]
        for age, deps, rate, kind in itertools.product(ages, dependents, rates, ["lean", "standard", "fat"]):
            assert 5 <= calculate_lifestyle_inflation_adjustment(age, deps, rate, kind) <= 20

    def test_factors_add_up(self):
        # 8 + 3 (age 30) + 0 + (-5) (50% saved) + 0
        assert calculate_lifestyle_inflation_adjustment(30, 0, 50, "standard") == 6

    def test_clamped_high(self):
        assert calculate_lifestyle_inflation_adjustment(25, 3, 5, "fat") == 20

    def test_clamped_low(self):
        assert calculate_lifestyle_inflation_adjustment(55, 0, 60, "lean") == 5

    def test_breakdown(self):
        b = get_lia_breakdown(34, 1, 37.5, "standard")
        assert (b.base, b.age_factor, b.dependents_factor, b.savings_rate_factor, b.lifestyle_multiplier) == (8, 2, 2, -1, 0)
        assert b.total == 11

    def test_unknown_lifestyle(self):
        with pytest.raises(InvalidInput):
            calculate_lifestyle_inflation_adjustment(30, 0, 20, "luxurious")


# ==================== SWR ====================

class TestSafeWithdrawalRate:
    @pytest.mark.parametrize("fire_age,expected", [(40, 3.5), (44, 3.5), (45, 4.0), (55, 4.0), (56, 4.5), (65, 4.5)])
    def test_tiers(self, fire_age, expected):
        assert calculate_safe_withdrawal_rate(fire_age) == expected

    def test_multiplier(self):
        assert get_corpus_multiplier(4.0) == 25
        assert get_corpus_multiplier(3.5) == pytest.approx(28.571428, rel=1e-6)


# ==================== FIRE METRICS ====================

class TestFireMetrics:
    def test_scenario_pinned(self, scenario):
        assert scenario.years_to_fire == 15
        assert scenario.savings_rate == 50
        assert scenario.post_fire_monthly_expense == pytest.approx(55000)
        assert scenario.post_fire_annual_expense == pytest.approx(660000)
        assert scenario.safe_withdrawal_rate == 4.0
        assert scenario.corpus_multiplier == 25
        # 660000 * 1.06^15 * 25
        assert scenario.inflation_adjusted_annual_expense == pytest.approx(1_581_728.41, rel=1e-6)
        assert scenario.required_corpus == pytest.approx(39_543_210.18, rel=1e-6)
        assert scenario.future_value_current_assets == 0
        assert scenario.projected_corpus_at_fire == pytest.approx(23_572_892, rel=1e-4)
        assert scenario.corpus_gap == scenario.required_corpus

    def test_scenario_matches_closed_form(self, scenario):
        fv_savings = 50000 * ((1 + MONTHLY_RATE) ** 180 - 1) / MONTHLY_RATE
        assert scenario.future_value_monthly_savings == pytest.approx(fv_savings)
        assert scenario.projected_corpus_at_fire == pytest.approx(fv_savings)

        needed = scenario.required_corpus * MONTHLY_RATE / ((1 + MONTHLY_RATE) ** 180 - 1)
        assert scenario.monthly_savings_needed == pytest.approx(needed)
        assert 80_000 < scenario.monthly_savings_needed < 90_000

    def test_off_track_consistency(self, scenario):
        assert scenario.is_on_track is False
        assert scenario.is_on_track == (scenario.projected_corpus_at_fire >= scenario.required_corpus)
        assert scenario.surplus_deficit == pytest.approx(scenario.projected_corpus_at_fire - scenario.required_corpus)
        assert scenario.monthly_savings_needed > scenario.monthly_savings
        assert scenario.savings_increase == pytest.approx(scenario.monthly_savings_needed - 50000)
        assert calculate_savings_gap(scenario) == pytest.approx(scenario.savings_increase)

    def test_on_track(self):
        m = calculate_fire_metrics(30, 45, 50000, 50_000_000, 50000, 100000, 10)
        assert m.is_on_track
        assert m.surplus_deficit > 0
        assert m.monthly_savings_needed == 50000
        assert m.savings_increase == 0
        assert calculate_savings_gap(m) == 0

    def test_zero_income(self):
        m = calculate_fire_metrics(30, 45, 50000, 0, 0, 0, 10)
        assert m.savings_rate == 0
        assert m.future_value_monthly_savings == 0

    def test_negative_savings(self):
        m = calculate_fire_metrics(40, 50, 40000, 1_000_000, -5000, 35000, 12)
        assert not m.is_on_track
        assert m.savings_increase > 5000

    def test_fractional_years(self):
        m = calculate_fire_metrics(30, 45, 50000, 1_000_000, 20000, 80000, 10, years_to_fire=7.5)
        assert m.years_to_fire == 7.5
        assert m.inflation_adjusted_annual_expense == pytest.approx(660000 * 1.06 ** 7.5)
        assert m.future_value_current_assets == pytest.approx(1_000_000 * 1.12 ** 7.5)
        assert m.future_value_monthly_savings == pytest.approx(future_value_of_savings(20000, 90, MONTHLY_RATE))

    def test_zero_years_left(self):
        m = calculate_fire_metrics(30, 45, 50000, 100, 20000, 80000, 10, years_to_fire=0)
        assert m.future_value_monthly_savings == 0
        assert m.projected_corpus_at_fire == 100
        assert not m.is_on_track
        assert m.monthly_savings_needed == 20000
        assert m.savings_increase == 0

    @pytest.mark.parametrize("kwargs", [
        {"current_age": 45, "fire_age": 45},
        {"current_age": 50, "fire_age": 45},
        {"current_net_worth": -1},
        {"years_to_fire": -0.5},
    ])
    def test_invalid_input(self, kwargs):
        args = dict(
            current_age=30, fire_age=45, current_monthly_expense=50000, current_net_worth=0,
            monthly_savings=50000, household_income=100000, lia=10,
        )
        args.update(kwargs)
        with pytest.raises(InvalidInput):
            calculate_fire_metrics(**args)


class TestComputeFromProfile:
    def test_derives_lia(self):
        inputs = FireInputs(
            current_age=30, fire_age=45, current_monthly_expense=50000, current_net_worth=0,
            monthly_savings=50000, household_income=100000, dependents=0, lifestyle_type="standard",
        )
        m = compute_fire_metrics(inputs)
        assert m.lifestyle_inflation_adjustment == 6
        assert m.post_fire_monthly_expense == pytest.approx(53000)

    def test_lia_override(self):
        inputs = FireInputs(
            current_age=30, fire_age=45, current_monthly_expense=50000,
            monthly_savings=50000, household_income=100000,
        )
        assert compute_fire_metrics(inputs, lia=10).post_fire_monthly_expense == pytest.approx(55000)

    def test_target_date_gives_fractional_years(self):
        inputs = FireInputs(
            current_age=30, fire_age=40, current_monthly_expense=50000,
            monthly_savings=50000, household_income=100000, fire_target_date=date(2036, 7, 1),
        )
        m = compute_fire_metrics(inputs, today=date(2026, 1, 1))
        assert m.years_to_fire == pytest.approx(10.5, abs=0.01)
        assert m.inflation_adjusted_annual_expense == pytest.approx(
            m.post_fire_annual_expense * 1.06 ** m.years_to_fire
        )


# ==================== DATES & ALLOCATION ====================

class TestHelpers:
    def test_years_until(self):
        assert years_until(date(2036, 1, 1), today=date(2026, 1, 1)) == pytest.approx(10.0, abs=0.01)
        assert years_until(date(2020, 1, 1), today=date(2026, 1, 1)) == 0

    def test_fire_target_year(self):
        assert get_fire_target_year(30, 45, today=date(2026, 10, 18)) == 2041

    @pytest.mark.parametrize("age,expected", [
        (30, {"equity": 70, "debt": 30, "cash": 0}),
        (20, {"equity": 70, "debt": 20, "cash": 10}),
        (80, {"equity": 30, "debt": 50, "cash": 20}),
    ])
    def test_recommended_allocation(self, age, expected):
        assert get_recommended_allocation(age) == expected


# ==================== TIMELINE ====================

class TestProjectionTimeline:
    def test_yearly_rows(self, scenario):
        out = project_corpus_timeline(scenario, today=date(2026, 1, 1))
        assert out["mode"] == "yearly"
        assert len(out["rows"]) == 16
        first, last = out["rows"][0], out["rows"][-1]
        assert first["Year"] == 2026 and first["Age"] == 30
        assert first["Projected_Corpus"] == 0
        assert last["Year"] == 2041 and last["Age"] == 45
        assert last["Projected_Corpus"] == pytest.approx(scenario.projected_corpus_at_fire, abs=1)
        assert last["Required_Corpus"] == pytest.approx(scenario.required_corpus, abs=1)
        assert set(out["columns"]) >= {"Year", "Age", "Projected_Corpus", "Required_Corpus", "Surplus_Deficit"}

    def test_monotonic_growth(self, scenario):
        corpus = [r["Projected_Corpus"] for r in project_corpus_timeline(scenario)["rows"]]
        assert corpus == sorted(corpus)

    def test_fractional_final_row(self):
        m = calculate_fire_metrics(30, 45, 50000, 1_000_000, 20000, 80000, 10, years_to_fire=7.5)
        rows = project_corpus_timeline(m)["rows"]
        assert len(rows) == 9
        assert rows[-1]["t_years"] == 7.5
        assert rows[-1]["Projected_Corpus"] == pytest.approx(m.projected_corpus_at_fire, abs=1)
        assert not math.isnan(rows[-1]["Surplus_Deficit"])
