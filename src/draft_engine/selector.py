"""Auto-pick selector: deterministic best-available asset for a roster."""

from typing import Any, Callable, Iterable, List, Optional

from .eligibility import RosterState
from .errors import NoEligibleAssetError
from .models import Asset, AssetCategory

# A ranker maps an asset to a sort key; lower keys rank first.
Ranker = Callable[[Asset], Any]


def rank_by_latest_score(asset: Asset) -> tuple:
    """Highest latest score first, unscored assets last, ties by asset id then category."""
    if asset.latest_score is None:
        return (1, 0.0, asset.asset_id, asset.category.value)
    return (0, -asset.latest_score, asset.asset_id, asset.category.value)


def best_of(candidates: Iterable[Asset], ranker: Ranker = rank_by_latest_score) -> Optional[Asset]:
    ordered = sorted(candidates, key=ranker)
    return ordered[0] if ordered else None


def select_best_available(
    roster: RosterState,
    pool: Iterable[Asset],
    team_id: int,
    ranker: Ranker = rank_by_latest_score,
) -> Asset:
    """Choose one asset for the team whose turn is up.

    Open category slots are considered in configured order; the first one
    with any candidate decides the category. When none of the open category
    slots can be filled, the flex slot takes the best asset of a category
    whose own slots are full.

    Raises:
        NoEligibleAssetError: nothing in the pool fits an open slot
    """
    pool = list(pool)
    by_category: dict = {}
    for asset in pool:
        by_category.setdefault(asset.category, []).append(asset)

    seen: List[AssetCategory] = []
    for _slot, category in roster.open_category_slots():
        if category in seen:
            continue
        seen.append(category)
        choice = best_of(by_category.get(category, []), ranker)
        if choice is not None:
            return choice

    if roster.flex_open:
        choice = best_of((a for a in pool if roster.fits_flex(a.category)), ranker)
        if choice is not None:
            return choice

    raise NoEligibleAssetError(team_id)
