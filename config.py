from __future__ import annotations

import logging
import os

APP_NAME = "fire-core"

# =========================
# FIRE ASSUMPTIONS
# =========================

INFLATION_RATE = 0.06          # 6% annual inflation
PRE_RETIREMENT_RETURN = 0.12   # 12% pre-retirement returns

BASE_LIA = 8
LIA_MIN = 5
LIA_MAX = 20

inputs_default = {
    "current_age": 30,
    "fire_age": 45,
    "current_monthly_expense": 50000,
    "current_net_worth": 0,
    "monthly_savings": 50000,
    "household_income": 100000,
    "dependents": 0,
    "lifestyle_type": "standard",
}

# =========================
# DUPLICATE DETECTION
# =========================

detection_default = {
    "similarity_threshold": 85,
    "value_tolerance_percentage": 5,
    "name_weight": 0.9,
    "value_weight": 0.1,
}

# Earlier weighting, before stopword filtering was added. Only for reproducing old results.
detection_legacy = {
    "similarity_threshold": 85,
    "value_tolerance_percentage": 5,
    "name_weight": 0.7,
    "value_weight": 0.3,
}

# =========================
# SERVICE
# =========================

_default_origins = [
    "https://aidanfisch.github.io",
    "http://localhost:3000",
    "http://localhost:5173",
    "https://wealthmodel.io",
    "http://wealthmodel.io",
    "https://www.wealthmodel.io",
    "http://www.wealthmodel.io",
    "http://localhost:5500",
    "http://127.0.0.1:5500",
]


def cors_origins() -> list[str]:
    raw = os.getenv("FIRE_API_CORS_ORIGINS", "")
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or list(_default_origins)


def port() -> int:
    return int(os.getenv("PORT", 8000))


def configure_logging(level: str | None = None) -> None:
    """Set up root logging once; FIRE_API_LOG_LEVEL wins over the default INFO."""
    level = (level or os.getenv("FIRE_API_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
