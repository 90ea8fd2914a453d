from __future__ import annotations

import logging
import math
from datetime import date
from typing import Optional

import numpy as np
import pandas as pd

import config
from errors import InvalidInput
from schemas import FireInputs, FireMetrics, LIABreakdown

logger = logging.getLogger(__name__)


# =========================
# HELPERS
# =========================

def monthly_growth_factor(annual_growth: float) -> float:
    """Convert annual growth to equivalent monthly multiplicative factor."""
    return (1 + annual_growth) ** (1 / 12)


def future_value_of_savings(monthly_savings: float, months: float, monthly_rate: float) -> float:
    """FV of a level monthly contribution. Nothing accrues over a non-positive horizon."""
    if months <= 0:
        return 0.0
    return monthly_savings * (((1 + monthly_rate) ** months - 1) / monthly_rate)


def calculate_savings_rate(monthly_savings: float, household_income: float) -> float:
    """Savings as % of income; 0 when there is no income to measure against."""
    if household_income <= 0:
        return 0.0
    return monthly_savings / household_income * 100


def years_until(target_date: date, today: Optional[date] = None) -> float:
    """Fractional years from today to target_date, never negative."""
    today = today or date.today()
    days = (pd.Timestamp(target_date) - pd.Timestamp(today)).days
    return max(0.0, days / 365.25)


def get_fire_target_year(current_age: float, fire_age: float, today: Optional[date] = None) -> int:
    today = today or date.today()
    return today.year + int(fire_age - current_age)


# =========================
# LIFESTYLE INFLATION ADJUSTMENT
# =========================

def calculate_age_factor(age: float) -> int:
    """Younger people expect more lifestyle change. Range -2..+3."""
    if age <= 30:
        return 3
    if age <= 35:
        return 2
    if age <= 40:
        return 1
    if age <= 45:
        return 0
    if age <= 50:
        return -1
    return -2


def calculate_dependents_factor(dependents: int) -> int:
    """More dependents, less predictable spending. Range 0..+5."""
    if dependents <= 0:
        return 0
    if dependents == 1:
        return 2
    if dependents == 2:
        return 3
    return 5


def calculate_savings_rate_factor(savings_rate: float) -> int:
    """Already frugal households need less buffer. Range -5..+5."""
    if savings_rate >= 50:
        return -5
    if savings_rate >= 40:
        return -3
    if savings_rate >= 30:
        return -1
    if savings_rate >= 20:
        return 1
    if savings_rate >= 10:
        return 3
    return 5


_LIFESTYLE_MULTIPLIERS = {
    "lean": -5,
    "standard": 0,
    "fat": 10,
}


def get_lifestyle_multiplier(lifestyle_type: str) -> int:
    try:
        return _LIFESTYLE_MULTIPLIERS[lifestyle_type]
    except KeyError:
        raise InvalidInput(f"Unknown lifestyle type {lifestyle_type!r}, expected one of {sorted(_LIFESTYLE_MULTIPLIERS)}") from None


def calculate_lifestyle_inflation_adjustment(
    age: float,
    dependents: int,
    savings_rate: float,
    lifestyle_type: str,
) -> float:
    """Base 8 plus the four factors, clamped to 5..20 (percent)."""
    lia = (
        config.BASE_LIA
        + calculate_age_factor(age)
        + calculate_dependents_factor(dependents)
        + calculate_savings_rate_factor(savings_rate)
        + get_lifestyle_multiplier(lifestyle_type)
    )
    return max(config.LIA_MIN, min(config.LIA_MAX, lia))


def get_lia_breakdown(age: float, dependents: int, savings_rate: float, lifestyle_type: str) -> LIABreakdown:
    return LIABreakdown(
        base=config.BASE_LIA,
        age_factor=calculate_age_factor(age),
        dependents_factor=calculate_dependents_factor(dependents),
        savings_rate_factor=calculate_savings_rate_factor(savings_rate),
        lifestyle_multiplier=get_lifestyle_multiplier(lifestyle_type),
        total=calculate_lifestyle_inflation_adjustment(age, dependents, savings_rate, lifestyle_type),
    )


# =========================
# SAFE WITHDRAWAL RATE
# =========================

def calculate_safe_withdrawal_rate(fire_age: float) -> float:
    """Earlier retirement means a longer drawdown, so a lower rate."""
    if fire_age < 45:
        return 3.5
    if fire_age <= 55:
        return 4.0
    return 4.5


def get_corpus_multiplier(swr: float) -> float:
    """e.g. 4% SWR -> 25x annual expense."""
    return 100 / swr


# =========================
# FIRE METRICS
# =========================

def calculate_fire_metrics(
    current_age: float,
    fire_age: float,
    current_monthly_expense: float,
    current_net_worth: float,
    monthly_savings: float,
    household_income: float,
    lia: float,
    years_to_fire: Optional[float] = None,
) -> FireMetrics:
    """
    Required corpus vs projected corpus at the FIRE age.

    years_to_fire defaults to fire_age - current_age; pass the fractional value when
    it comes from an exact target date.
    """
    if fire_age <= current_age:
        raise InvalidInput(f"fire_age ({fire_age}) must be greater than current_age ({current_age})")
    if current_net_worth < 0:
        raise InvalidInput("current_net_worth cannot be negative")
    if current_monthly_expense < 0:
        raise InvalidInput("current_monthly_expense cannot be negative")
    if years_to_fire is None:
        years_to_fire = fire_age - current_age
    elif years_to_fire < 0:
        raise InvalidInput("years_to_fire cannot be negative")

    safe_withdrawal_rate = calculate_safe_withdrawal_rate(fire_age)
    corpus_multiplier = get_corpus_multiplier(safe_withdrawal_rate)
    savings_rate = calculate_savings_rate(monthly_savings, household_income)

    # ---- Post-FIRE expenses (today's money, with LIA)
    post_fire_monthly_expense = current_monthly_expense * (1 + lia / 100)
    post_fire_annual_expense = post_fire_monthly_expense * 12

    # ---- Inflate to the FIRE date
    inflation_adjusted_annual_expense = post_fire_annual_expense * (1 + config.INFLATION_RATE) ** years_to_fire
    required_corpus = inflation_adjusted_annual_expense * corpus_multiplier

    # ---- Growth of what exists today + what gets saved
    future_value_current_assets = current_net_worth * (1 + config.PRE_RETIREMENT_RETURN) ** years_to_fire
    months_to_fire = years_to_fire * 12
    monthly_rate = monthly_growth_factor(config.PRE_RETIREMENT_RETURN) - 1
    future_value_monthly_savings = future_value_of_savings(monthly_savings, months_to_fire, monthly_rate)
    projected_corpus_at_fire = future_value_current_assets + future_value_monthly_savings

    is_on_track = projected_corpus_at_fire >= required_corpus
    surplus_deficit = projected_corpus_at_fire - required_corpus

    # ---- Reverse annuity: monthly contribution that closes the gap
    monthly_savings_needed = monthly_savings
    savings_increase = 0.0
    if not is_on_track and months_to_fire > 0:
        remaining = required_corpus - future_value_current_assets
        monthly_savings_needed = remaining * monthly_rate / ((1 + monthly_rate) ** months_to_fire - 1)
        savings_increase = max(0.0, monthly_savings_needed - monthly_savings)

    logger.debug(
        "FIRE metrics: years=%.2f swr=%.1f required=%.0f projected=%.0f on_track=%s",
        years_to_fire, safe_withdrawal_rate, required_corpus, projected_corpus_at_fire, is_on_track,
    )

    return FireMetrics(
        current_age=current_age,
        fire_age=fire_age,
        years_to_fire=years_to_fire,
        current_monthly_expense=current_monthly_expense,
        current_net_worth=current_net_worth,
        monthly_savings=monthly_savings,
        savings_rate=savings_rate,
        lifestyle_inflation_adjustment=lia,
        safe_withdrawal_rate=safe_withdrawal_rate,
        corpus_multiplier=corpus_multiplier,
        post_fire_monthly_expense=post_fire_monthly_expense,
        post_fire_annual_expense=post_fire_annual_expense,
        inflation_adjusted_annual_expense=inflation_adjusted_annual_expense,
        required_corpus=required_corpus,
        corpus_gap=required_corpus - current_net_worth,
        future_value_current_assets=future_value_current_assets,
        future_value_monthly_savings=future_value_monthly_savings,
        projected_corpus_at_fire=projected_corpus_at_fire,
        is_on_track=is_on_track,
        monthly_savings_needed=monthly_savings_needed,
        savings_increase=savings_increase,
        surplus_deficit=surplus_deficit,
    )


def compute_fire_metrics(inputs: FireInputs, lia: Optional[float] = None, today: Optional[date] = None) -> FireMetrics:
    """Profile record -> metrics. LIA is derived from the profile unless given."""
    if lia is None:
        savings_rate = calculate_savings_rate(inputs.monthly_savings, inputs.household_income)
        lia = calculate_lifestyle_inflation_adjustment(
            inputs.current_age, inputs.dependents, savings_rate, inputs.lifestyle_type
        )
    years_to_fire = None
    if inputs.fire_target_date is not None:
        years_to_fire = years_until(inputs.fire_target_date, today)

    return calculate_fire_metrics(
        current_age=inputs.current_age,
        fire_age=inputs.fire_age,
        current_monthly_expense=inputs.current_monthly_expense,
        current_net_worth=inputs.current_net_worth,
        monthly_savings=inputs.monthly_savings,
        household_income=inputs.household_income,
        lia=lia,
        years_to_fire=years_to_fire,
    )


def calculate_savings_gap(metrics: FireMetrics) -> float:
    if metrics.is_on_track:
        return 0.0
    return max(0.0, metrics.monthly_savings_needed - metrics.monthly_savings)


def get_recommended_allocation(age: float) -> dict:
    """Equity = 100 - age (30..70), debt = age (20..50), cash is the rest."""
    equity = max(30, min(70, 100 - age))
    debt = max(20, min(50, age))
    return {"equity": equity, "debt": debt, "cash": 100 - equity - debt}


# =========================
# PROJECTION TIMELINE (YEARLY)
# =========================

def project_corpus_timeline(metrics: FireMetrics, today: Optional[date] = None) -> dict:
    """
    Year-by-year projected corpus from today to the FIRE date, same growth
    assumptions as calculate_fire_metrics. The last row is the FIRE date itself,
    so a fractional years_to_fire gets its own final row.
    """
    today = today or date.today()
    years = metrics.years_to_fire

    offsets = np.arange(0, math.floor(years) + 1, dtype=float)
    if years > offsets[-1]:
        offsets = np.append(offsets, years)

    monthly_rate = monthly_growth_factor(config.PRE_RETIREMENT_RETURN) - 1
    months = offsets * 12

    dfy = pd.DataFrame({"t_years": offsets})
    dfy["Year"] = today.year + np.floor(offsets).astype(int)
    dfy["Age"] = metrics.current_age + offsets
    dfy["Future_Value_Current_Assets"] = metrics.current_net_worth * (1 + config.PRE_RETIREMENT_RETURN) ** offsets
    dfy["Future_Value_Savings"] = np.where(
        months > 0,
        metrics.monthly_savings * (((1 + monthly_rate) ** months - 1) / monthly_rate),
        0.0,
    )
    dfy["Projected_Corpus"] = dfy["Future_Value_Current_Assets"] + dfy["Future_Value_Savings"]
    dfy["Required_Corpus"] = metrics.required_corpus
    dfy["Surplus_Deficit"] = dfy["Projected_Corpus"] - dfy["Required_Corpus"]

    # Round money columns only (keep time columns accurate)
    do_not_round = {"t_years", "Age", "Year"}
    money_cols = [c for c in dfy.columns if c not in do_not_round]
    dfy[money_cols] = dfy[money_cols].round(0)
    dfy["Age"] = dfy["Age"].round(2)
    dfy["t_years"] = dfy["t_years"].round(3)

    return {
        "mode": "yearly",
        "columns": dfy.columns.tolist(),
        "rows": dfy.to_dict(orient="records"),
    }
