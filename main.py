from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import List, Optional
import logging
import time

import config
from duplicates import (
    detect_duplicates_batch,
    filter_selected_assets,
    get_duplicate_stats,
    merge_with_existing_asset,
    smart_merge_assets,
)
from errors import InvalidInput
from model import compute_fire_metrics, calculate_savings_rate, get_lia_breakdown, project_corpus_timeline
from schemas import (
    DEFAULT_DETECTION_CONFIG,
    DetectionConfig,
    DuplicateStats,
    FireInputs,
    FireMetrics,
    LIABreakdown,
    LifestyleType,
    RecordId,
    ReviewAsset,
)

config.configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=config.APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _log_timing(route: str, t0: float) -> None:
    logger.info("[timing] %s total=%.1fms", route, (time.perf_counter() - t0) * 1000)


# -------- FIRE endpoints --------
class FireRequest(BaseModel):
    inputs: FireInputs = Field(..., description="Profile fields from the frontend")
    lia: Optional[float] = Field(None, ge=0, description="Override the derived lifestyle inflation adjustment")


class FireResponse(BaseModel):
    metrics: FireMetrics
    lia_breakdown: LIABreakdown


class LIARequest(BaseModel):
    age: float = Field(..., ge=0)
    dependents: int = Field(0, ge=0, le=10)
    savings_rate: float
    lifestyle_type: LifestyleType = "standard"


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/fire/metrics", response_model=FireResponse)
def fire_metrics(req: FireRequest):
    t0 = time.perf_counter()
    try:
        inputs = req.inputs
        savings_rate = calculate_savings_rate(inputs.monthly_savings, inputs.household_income)
        breakdown = get_lia_breakdown(inputs.current_age, inputs.dependents, savings_rate, inputs.lifestyle_type)
        metrics = compute_fire_metrics(inputs, lia=req.lia)
        # factors stay as derived, total reports the LIA the metrics were computed with
        breakdown = breakdown.model_copy(update={"total": metrics.lifestyle_inflation_adjustment})
    except InvalidInput as e:
        logger.warning("[error] /fire/metrics %s", e)
        raise HTTPException(status_code=400, detail=str(e))
    _log_timing("/fire/metrics", t0)
    return FireResponse(metrics=metrics, lia_breakdown=breakdown)


@app.post("/fire/lia", response_model=LIABreakdown)
def fire_lia(req: LIARequest):
    try:
        return get_lia_breakdown(req.age, req.dependents, req.savings_rate, req.lifestyle_type)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/fire/projection")
def fire_projection(req: FireRequest):
    t0 = time.perf_counter()
    try:
        metrics = compute_fire_metrics(req.inputs, lia=req.lia)
        result = project_corpus_timeline(metrics)
    except InvalidInput as e:
        logger.warning("[error] /fire/projection %s", e)
        raise HTTPException(status_code=400, detail=str(e))
    _log_timing("/fire/projection", t0)
    return result


# -------- Asset review endpoints --------
class DuplicateRequest(BaseModel):
    new_assets: List[dict] = Field(..., description="Assets extracted from the uploaded statements")
    existing_assets: List[dict] = Field(default_factory=list)
    detection_config: DetectionConfig = DEFAULT_DETECTION_CONFIG
    target_snapshot_id: Optional[RecordId] = None
    strict: bool = False


class DuplicateResponse(BaseModel):
    assets: List[ReviewAsset]
    stats: DuplicateStats


class SelectionRequest(BaseModel):
    assets: List[ReviewAsset]


@app.post("/assets/duplicates", response_model=DuplicateResponse)
def assets_duplicates(req: DuplicateRequest):
    t0 = time.perf_counter()
    try:
        review = detect_duplicates_batch(
            req.new_assets,
            req.existing_assets,
            config=req.detection_config,
            target_snapshot_id=req.target_snapshot_id,
            strict=req.strict,
        )
    except InvalidInput as e:
        logger.warning("[error] /assets/duplicates %s", e)
        raise HTTPException(status_code=400, detail=str(e))
    _log_timing("/assets/duplicates", t0)
    return DuplicateResponse(assets=review, stats=get_duplicate_stats(review))


class MergeRequest(BaseModel):
    assets: List[dict] = Field(..., description="One duplicate cluster")
    existing_asset: Optional[dict] = Field(None, description="Stored asset the cluster folds into")


@app.post("/assets/selected")
def assets_selected(req: SelectionRequest):
    return {"assets": [a.model_dump() for a in filter_selected_assets(req.assets)]}


@app.post("/assets/merge")
def assets_merge(req: MergeRequest):
    try:
        merged = smart_merge_assets(req.assets)
        if req.existing_asset is not None:
            merged = merge_with_existing_asset(req.existing_asset, merged)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"asset": merged.model_dump()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.port())
