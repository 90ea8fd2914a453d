"""
Records for the FIRE core.

The engines in similarity.py, duplicates.py and model.py read and return these models.
Asset records keep unknown fields (asset class, ISIN, ticker, ...) so whatever the
upstream classifier attached survives the duplicate review untouched.
"""
from __future__ import annotations

from datetime import date
from typing import Annotated, Any, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

import config

MatchType = Literal["exact", "name_and_value", "name"]
LifestyleType = Literal["lean", "standard", "fat"]


def _int_to_str(value: Any) -> Any:
    # stored rows often carry integer primary keys
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


RecordId = Annotated[str, BeforeValidator(_int_to_str)]


# -------- Duplicate detection --------

class Asset(BaseModel):
    """Asset as extracted from a statement, or as already stored (id/snapshot_id set)."""
    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    asset_name: str = Field(..., min_length=1, description="Free-text holding name")
    current_value: float = Field(..., ge=0, description="Value in the batch currency")
    source_file: Optional[str] = Field(None, description="Origin label, e.g. the statement file")
    id: Optional[RecordId] = Field(None, description="Stable id, existing assets only")
    snapshot_id: Optional[RecordId] = Field(None, description="Snapshot scope, existing assets only")


class DuplicateMatch(BaseModel):
    """One candidate duplicate. Created per detection run, never mutated."""
    model_config = ConfigDict(frozen=True)

    existing_asset_id: Optional[RecordId] = None
    existing_asset_name: str
    existing_value: float
    existing_source: str
    similarity_score: float = Field(..., ge=0, le=1)
    match_type: MatchType


class ReviewAsset(Asset):
    """Asset extended with the duplicate verdict shown to the reviewer."""
    id: RecordId = Field(..., description="Temporary id for the review session (new-<index>)")
    is_duplicate: bool = False
    duplicate_matches: List[DuplicateMatch] = Field(default_factory=list)
    is_selected: bool = True


class DetectionConfig(BaseModel):
    """Tunables for one detection run. Weights are a plain weighted sum, not normalised."""
    model_config = ConfigDict(frozen=True)

    similarity_threshold: float = Field(config.detection_default["similarity_threshold"], ge=0, le=100)
    value_tolerance_percentage: float = Field(config.detection_default["value_tolerance_percentage"], ge=0)
    name_weight: float = Field(config.detection_default["name_weight"], ge=0)
    value_weight: float = Field(config.detection_default["value_weight"], ge=0)


DEFAULT_DETECTION_CONFIG = DetectionConfig()
LEGACY_DETECTION_CONFIG = DetectionConfig(**config.detection_legacy)


class DuplicateStats(BaseModel):
    total_assets: int = 0
    duplicates_found: int = 0
    exact_duplicates: int = 0
    name_and_value_duplicates: int = 0
    name_only_duplicates: int = 0


# -------- FIRE projection --------

class FireInputs(BaseModel):
    """Profile fields the projection needs. All money in one currency unit."""
    current_age: float = Field(..., ge=0)
    fire_age: float = Field(..., ge=0, description="Target retirement age, must exceed current_age")
    current_monthly_expense: float = Field(..., ge=0)
    current_net_worth: float = Field(0.0, ge=0)
    monthly_savings: float = Field(..., description="Income minus expenses, may be negative")
    household_income: float = Field(..., ge=0, description="Monthly household income")
    dependents: int = Field(0, ge=0, le=10)
    lifestyle_type: LifestyleType = "standard"
    fire_target_date: Optional[date] = Field(None, description="Exact FIRE date, gives fractional years")


class LIABreakdown(BaseModel):
    base: float
    age_factor: float
    dependents_factor: float
    savings_rate_factor: float
    lifestyle_multiplier: float
    total: float


class FireMetrics(BaseModel):
    """Fully derived from FireInputs; persistence is the caller's job."""
    model_config = ConfigDict(frozen=True)

    # input summary
    current_age: float
    fire_age: float
    years_to_fire: float
    current_monthly_expense: float
    current_net_worth: float
    monthly_savings: float
    savings_rate: float

    lifestyle_inflation_adjustment: float
    safe_withdrawal_rate: float
    corpus_multiplier: float

    post_fire_monthly_expense: float
    post_fire_annual_expense: float
    inflation_adjusted_annual_expense: float
    required_corpus: float
    corpus_gap: float

    future_value_current_assets: float
    future_value_monthly_savings: float
    projected_corpus_at_fire: float

    is_on_track: bool
    monthly_savings_needed: float
    savings_increase: float = Field(..., ge=0)
    surplus_deficit: float
