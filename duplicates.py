"""
Duplicate detection for statement uploads.

A batch of freshly extracted assets is compared with what the user already has
stored (optionally one snapshot only) and with itself. Every new asset comes back
as a ReviewAsset carrying its ranked candidate duplicates; anything with a
candidate starts deselected and flagged until the reviewer clears it. Confirmed
clusters can then be folded into one asset with smart_merge_assets.

Cost is O(n*m) for new-vs-existing plus O(n^2) for the in-batch pass. All state is
local to the call, so concurrent requests need no locking.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from errors import InvalidInput
from schemas import (
    DEFAULT_DETECTION_CONFIG,
    Asset,
    DetectionConfig,
    DuplicateMatch,
    DuplicateStats,
    ReviewAsset,
)
from similarity import classify_match, name_similarity, value_similarity, weighted_score

logger = logging.getLogger(__name__)

AssetLike = Union[Asset, Mapping[str, Any]]

UNKNOWN_SOURCE = "Unknown"
CURRENT_UPLOAD_SOURCE = "Current upload"
SAME_FILE_SOURCE = "Same file"

_REVIEW_FLAGS = {"is_duplicate", "duplicate_matches", "is_selected"}
_REVIEW_FIELDS = _REVIEW_FLAGS | {"id"}

# first populated value across the cluster wins
_IDENTIFIER_FIELDS = ("isin", "ticker_symbol", "exchange", "purchase_price")


# -------- Helpers --------

def _as_asset(item: AssetLike, label: str = "asset") -> Asset:
    if isinstance(item, Asset):
        return item
    try:
        return Asset.model_validate(item)
    except ValidationError as e:
        raise InvalidInput(f"{label} is not a valid asset: {e.errors()[0].get('msg', e)}") from e


def _coerce_assets(items: Iterable[AssetLike], strict: bool, label: str) -> List[Tuple[int, Asset]]:
    """Validate each element, keeping its input index. Bad elements are skipped unless strict."""
    out = []
    for idx, item in enumerate(items):
        try:
            out.append((idx, _as_asset(item, f"{label}[{idx}]")))
        except InvalidInput as e:
            if strict:
                raise
            logger.warning("Skipping malformed element: %s", e)
    return out


def _temp_id(index: int) -> str:
    return f"new-{index}"


def _score_pair(
    subject: Asset,
    other: Asset,
    config: DetectionConfig,
    other_id: Optional[str],
    fallback_source: str,
) -> Optional[DuplicateMatch]:
    """Match of `other` as seen from `subject`, or None when the pair does not clear the threshold."""
    name_sim = name_similarity(subject.asset_name, other.asset_name)
    # a strong value agreement must never rescue an unrelated name
    if name_sim < config.similarity_threshold:
        return None

    value_sim = value_similarity(subject.current_value, other.current_value, config.value_tolerance_percentage)
    score = weighted_score(name_sim, value_sim, config)
    if score < config.similarity_threshold:
        return None

    return DuplicateMatch(
        existing_asset_id=other_id,
        existing_asset_name=other.asset_name,
        existing_value=other.current_value,
        existing_source=other.source_file or fallback_source,
        similarity_score=min(1.0, score / 100.0),
        match_type=classify_match(name_sim, value_sim),
    )


def _mirror(match: DuplicateMatch, subject: Asset, subject_id: str, fallback_source: str) -> DuplicateMatch:
    """Same pair seen from the other side. Scores are symmetric so only the reference changes."""
    return DuplicateMatch(
        existing_asset_id=subject_id,
        existing_asset_name=subject.asset_name,
        existing_value=subject.current_value,
        existing_source=subject.source_file or fallback_source,
        similarity_score=match.similarity_score,
        match_type=match.match_type,
    )


def _sort_matches(matches: List[DuplicateMatch]) -> List[DuplicateMatch]:
    return sorted(matches, key=lambda m: m.similarity_score, reverse=True)


def _review_asset(
    asset: Asset,
    index: int,
    matches: List[DuplicateMatch],
    is_duplicate: bool,
    is_selected: bool,
) -> ReviewAsset:
    data = asset.model_dump()
    data.update(
        id=_temp_id(index),
        is_duplicate=is_duplicate,
        duplicate_matches=matches,
        is_selected=is_selected,
    )
    return ReviewAsset.model_validate(data)


# -------- Public API --------

def detect_duplicates_for_asset(
    new_asset: AssetLike,
    existing_assets: Sequence[AssetLike],
    config: DetectionConfig = DEFAULT_DETECTION_CONFIG,
) -> List[DuplicateMatch]:
    """Candidate duplicates of one new asset among stored assets, best first.

    Raises InvalidInput when the asset or any stored asset fails validation.
    """
    subject = _as_asset(new_asset, "new_asset")
    matches = []
    for idx, item in enumerate(existing_assets):
        existing = _as_asset(item, f"existing_assets[{idx}]")
        match = _score_pair(subject, existing, config, existing.id, UNKNOWN_SOURCE)
        if match is not None:
            matches.append(match)
    return _sort_matches(matches)


def detect_duplicates_batch(
    new_assets: Sequence[AssetLike],
    existing_assets: Sequence[AssetLike],
    config: DetectionConfig = DEFAULT_DETECTION_CONFIG,
    target_snapshot_id: Optional[Union[str, int]] = None,
    strict: bool = False,
) -> List[ReviewAsset]:
    """
    Review list for an upload.

    1. existing assets are narrowed to `target_snapshot_id` when given (merge into a snapshot)
    2. each new asset is matched against the existing set; it starts selected only if
       nothing matched
    3. every pair inside the batch is compared once; a clearing pair is recorded on both
       sides and both assets are flagged and deselected

    Malformed elements are logged and dropped unless `strict`, which raises InvalidInput.
    Temporary ids (new-<index>) use the element's position in `new_assets`.
    """
    batch = _coerce_assets(new_assets, strict, "new_assets")
    existing = [a for _, a in _coerce_assets(existing_assets, strict, "existing_assets")]
    if target_snapshot_id is not None:
        existing = [a for a in existing if a.snapshot_id == str(target_snapshot_id)]

    matches: Dict[int, List[DuplicateMatch]] = {}
    selected: Dict[int, bool] = {}
    flagged: Dict[int, bool] = {}

    # new vs already saved
    for idx, asset in batch:
        found = detect_duplicates_for_asset(asset, existing, config)
        matches[idx] = found
        selected[idx] = not found
        flagged[idx] = bool(found)

    # new vs new, both directions
    intra_pairs = 0
    for pos, (i, asset_i) in enumerate(batch):
        for j, asset_j in batch[pos + 1:]:
            match = _score_pair(asset_i, asset_j, config, _temp_id(j), CURRENT_UPLOAD_SOURCE)
            if match is None:
                continue
            intra_pairs += 1
            matches[i].append(match)
            matches[j].append(_mirror(match, asset_i, _temp_id(i), CURRENT_UPLOAD_SOURCE))
            for k in (i, j):
                flagged[k] = True
                selected[k] = False

    review = [
        _review_asset(asset, idx, _sort_matches(matches[idx]), flagged[idx], selected[idx])
        for idx, asset in batch
    ]
    logger.info(
        "Duplicate check: %d new vs %d existing, %d flagged (%d in-batch pairs)",
        len(batch), len(existing), sum(1 for r in review if r.is_duplicate), intra_pairs,
    )
    return review


def detect_intra_batch_duplicates(
    assets: Sequence[AssetLike],
    config: DetectionConfig = DEFAULT_DETECTION_CONFIG,
) -> List[ReviewAsset]:
    """
    Clean up a single file before saving: the first asset of each cluster keeps the
    matches, later members are absorbed into it and left out of the result.
    """
    batch = _coerce_assets(assets, True, "assets")
    absorbed = set()
    review = []

    for pos, (i, asset) in enumerate(batch):
        if i in absorbed:
            continue
        found = []
        for j, other in batch[pos + 1:]:
            if j in absorbed:
                continue
            match = _score_pair(asset, other, config, _temp_id(j), SAME_FILE_SOURCE)
            if match is not None:
                found.append(match)
                absorbed.add(j)
        review.append(_review_asset(asset, i, _sort_matches(found), bool(found), not found))

    return review


def filter_selected_assets(review_assets: Sequence[ReviewAsset]) -> List[Asset]:
    """Selected, non-duplicate assets with the review-only fields stripped.

    A flagged asset is only kept once the reviewer clears `is_duplicate` as well,
    usually after folding it into its match with smart_merge_assets.
    """
    return [
        Asset.model_validate(ra.model_dump(exclude=_REVIEW_FIELDS))
        for ra in review_assets
        if ra.is_selected and not ra.is_duplicate
    ]


def get_duplicate_stats(review_assets: Sequence[ReviewAsset]) -> DuplicateStats:
    """Counts per match type, using each duplicate's best match."""
    duplicates = [ra for ra in review_assets if ra.is_duplicate]
    top_types = [ra.duplicate_matches[0].match_type for ra in duplicates if ra.duplicate_matches]
    return DuplicateStats(
        total_assets=len(review_assets),
        duplicates_found=len(duplicates),
        exact_duplicates=top_types.count("exact"),
        name_and_value_duplicates=top_types.count("name_and_value"),
        name_only_duplicates=top_types.count("name"),
    )


# -------- Merging --------

def _extra(asset: Asset, name: str) -> Any:
    return getattr(asset, name, None)


def _populated(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _highest_confidence(assets: Sequence[Asset]) -> Asset:
    """Asset whose classification is trusted most; the earliest one wins ties."""
    best = assets[0]
    for asset in assets[1:]:
        if (_extra(asset, "ai_confidence_score") or 0) > (_extra(best, "ai_confidence_score") or 0):
            best = asset
    return best


def smart_merge_assets(assets: Sequence[AssetLike]) -> Asset:
    """
    Fold a cluster of duplicates into one asset.

    - current_value and quantity are summed
    - the longest asset_name is kept
    - classification and any other extra fields come from the highest-confidence asset
    - isin, ticker_symbol, exchange and purchase_price take the first populated value
    - purchase_date keeps the earliest, ai_confidence_score the highest
    - source files and notes are combined

    Review flags are dropped from the result. Raises InvalidInput on an empty cluster.
    """
    if not assets:
        raise InvalidInput("Cannot merge an empty asset list")
    cluster = [_as_asset(item, f"assets[{idx}]") for idx, item in enumerate(assets)]
    base = _highest_confidence(cluster)
    exclude = _REVIEW_FIELDS if isinstance(base, ReviewAsset) else _REVIEW_FLAGS
    merged = base.model_dump(exclude=exclude)
    if len(cluster) == 1:
        return Asset.model_validate(merged)

    merged["current_value"] = sum(a.current_value for a in cluster)

    total_quantity = sum(_extra(a, "quantity") or 0 for a in cluster)
    if total_quantity > 0:
        merged["quantity"] = total_quantity
    else:
        merged.pop("quantity", None)

    longest = cluster[0]
    for asset in cluster[1:]:
        if len(asset.asset_name) > len(longest.asset_name):
            longest = asset
    merged["asset_name"] = longest.asset_name

    for name in _IDENTIFIER_FIELDS:
        value = next((v for v in (_extra(a, name) for a in cluster) if _populated(v)), None)
        if value is not None:
            merged[name] = value

    purchase_dates = [d for d in (_extra(a, "purchase_date") for a in cluster) if _populated(d)]
    if purchase_dates:
        # ISO dates order correctly as text
        merged["purchase_date"] = min(purchase_dates, key=str)

    scores = [_extra(a, "ai_confidence_score") for a in cluster]
    if any(s is not None for s in scores):
        merged["ai_confidence_score"] = max(s or 0 for s in scores)

    sources = list(dict.fromkeys(a.source_file for a in cluster if _populated(a.source_file)))
    merged["source_file"] = ", ".join(sources) or None

    notes = [n for n in (_extra(a, "notes") for a in cluster) if _populated(n)]
    if notes:
        merged["notes"] = " | ".join(notes)
    else:
        merged.pop("notes", None)

    logger.debug("Merged %d assets into %r (%.2f)", len(cluster), merged["asset_name"], merged["current_value"])
    return Asset.model_validate(merged)


def merge_with_existing_asset(existing: AssetLike, new_asset: AssetLike) -> Asset:
    """
    Fold a new upload into an asset that is already stored.

    The result keeps the stored asset's id and snapshot and notes where the update came from.
    """
    stored = _as_asset(existing, "existing")
    incoming = _as_asset(new_asset, "new_asset")
    merged = smart_merge_assets([stored, incoming])

    note = f"Updated from {incoming.source_file or CURRENT_UPLOAD_SOURCE}"
    data = merged.model_dump()
    previous = data.get("notes")
    data.update(
        id=stored.id,
        snapshot_id=stored.snapshot_id,
        notes=f"{previous} | {note}" if previous else note,
    )
    return Asset.model_validate(data)
