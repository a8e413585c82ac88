"""
Material price reconciliation — fills in material prices from a price source.

One pass over the materials list, strictly in order, one lookup in flight
at a time, with a fixed pause between lookups to stay under the source's
rate limits. Do not parallelise this loop.

Per material:
- price > 0 and not manually overridden → skipped (already auto-priced)
- otherwise look up search_term (or name):
    price found → price, total_price updated, override cleared → fetched
    not found / lookup error → left unchanged → failed

A PricingUnavailableError (source unreachable) stops the pass. Prices
already written stay written; ReconciliationError carries the partial result.
"""

import enum
import logging
import numbers
import time
from decimal import Decimal
from typing import Callable, Optional

from .config import settings
from .price_lookup import PricingUnavailableError
from .quote_calculator import update_material_total_price

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, enum.Enum):
    ALREADY_PRICED = "already_priced"
    TOTAL_FAILURE = "total_failure"
    FULL_SUCCESS = "full_success"
    PARTIAL_SUCCESS = "partial_success"
    NOTHING_DONE = "nothing_done"


OUTCOME_TITLES = {
    ReconcileOutcome.ALREADY_PRICED: "Already Priced",
    ReconcileOutcome.TOTAL_FAILURE: "No Prices Found",
    ReconcileOutcome.FULL_SUCCESS: "Success",
    ReconcileOutcome.PARTIAL_SUCCESS: "Partial Success",
    ReconcileOutcome.NOTHING_DONE: "Complete",
}

BATCH_FAILURE_TITLE = "Error"
BATCH_FAILURE_MESSAGE = "Failed to fetch prices. Please check your connection."


def reconcile_outcome(fetched: int, skipped: int, failed: int) -> ReconcileOutcome:
    """Which bucket a run falls into. Checked in this order."""
    if fetched == 0 and failed == 0 and skipped > 0:
        return ReconcileOutcome.ALREADY_PRICED
    if fetched == 0 and failed > 0:
        return ReconcileOutcome.TOTAL_FAILURE
    if fetched > 0 and failed == 0:
        return ReconcileOutcome.FULL_SUCCESS
    if fetched > 0 and failed > 0:
        return ReconcileOutcome.PARTIAL_SUCCESS
    return ReconcileOutcome.NOTHING_DONE


def _plural(count: int, word: str) -> str:
    return "%d %s%s" % (count, word, "" if count == 1 else "s")


class ReconcileResult:
    """Materials after a reconciliation pass plus the fetched/skipped/failed tally."""

    def __init__(self, materials: list, fetched: int = 0, skipped: int = 0,
                 failed: int = 0, cancelled: bool = False):
        self.materials = materials
        self.fetched = fetched
        self.skipped = skipped
        self.failed = failed
        self.cancelled = cancelled

    def __repr__(self):
        return "ReconcileResult(fetched=%d, skipped=%d, failed=%d, cancelled=%s)" % (
            self.fetched, self.skipped, self.failed, self.cancelled,
        )

    @property
    def outcome(self) -> ReconcileOutcome:
        return reconcile_outcome(self.fetched, self.skipped, self.failed)

    def counts(self) -> dict:
        return {"fetched": self.fetched, "skipped": self.skipped, "failed": self.failed}


class ReconciliationError(Exception):
    """The price source became unavailable mid-pass. `result` holds what was done before that."""

    def __init__(self, message: str, result: ReconcileResult):
        super().__init__(message)
        self.result = result


def outcome_message(result: ReconcileResult, source_label: str = "the price source") -> dict:
    """User-facing title + message for a finished pass."""
    outcome = result.outcome
    if outcome == ReconcileOutcome.ALREADY_PRICED:
        message = "All materials already have prices."
    elif outcome == ReconcileOutcome.TOTAL_FAILURE:
        message = (
            "Could not find prices for %s. Try editing the material names to match %s products."
            % (_plural(result.failed, "material"), source_label)
        )
    elif outcome == ReconcileOutcome.FULL_SUCCESS:
        message = "Updated %s from %s." % (_plural(result.fetched, "price"), source_label)
    elif outcome == ReconcileOutcome.PARTIAL_SUCCESS:
        message = "Updated %s. Could not find %s." % (
            _plural(result.fetched, "price"), _plural(result.failed, "item"),
        )
    else:
        message = "Price fetch complete."
    if result.cancelled:
        message += " Stopped before the end of the list."
    return {"outcome": outcome.value, "title": OUTCOME_TITLES[outcome], "message": message}


def needs_price(material: dict) -> bool:
    """False only for materials that already hold an automatically fetched price."""
    price = material.get("price") or 0
    return not (price > 0 and not material.get("manual_price_override", False))


def _apply_price(material: dict, found: dict, rename: bool):
    material["price"] = found["price"]
    material["total_price"] = update_material_total_price(material)["total_price"]
    material["manual_price_override"] = False
    if found.get("item_number"):
        material["catalog_item_number"] = found["item_number"]
    if rename and found.get("name"):
        material["name"] = found["name"]


def _found_price(response) -> Optional[float]:
    if not isinstance(response, dict):
        return None
    price = response.get("price")
    if isinstance(price, bool) or not isinstance(price, (numbers.Real, Decimal)):
        return None
    try:
        price = float(price)
    except ValueError:  # signalling NaN
        return None
    if price != price or price <= 0:
        return None
    return price


def reconcile_prices(materials: list, lookup: Callable[[str], dict],
                     on_progress: Optional[Callable[[list, dict], None]] = None,
                     cancel_event=None, delay_seconds: Optional[float] = None,
                     rename: bool = False) -> ReconcileResult:
    """
    Fill in material prices from `lookup`, in list order.

    Args:
        materials: material dicts — updated in place
        lookup: callable(search_term) -> {"price": float | None, "name"?, "item_number"?}
        on_progress: called after every material with (materials, counts)
        cancel_event: threading.Event; checked between materials
        delay_seconds: pause between lookups (default PRICE_FETCH_DELAY_SECONDS)
        rename: adopt the source's product name when it returns one

    Returns:
        ReconcileResult (materials is the same list object that was passed in)

    Raises:
        ReconciliationError: the source became unreachable; .result has the
        partial tally and the already-updated materials.
    """
    if delay_seconds is None:
        delay_seconds = settings.PRICE_FETCH_DELAY_SECONDS

    result = ReconcileResult(materials)
    looked_up = False

    for material in materials:
        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True
            logger.info("Price fetch cancelled — %s", result)
            break

        if not needs_price(material):
            result.skipped += 1
            if on_progress:
                on_progress(materials, result.counts())
            continue

        if looked_up and delay_seconds > 0:
            if cancel_event is not None:
                if cancel_event.wait(delay_seconds):
                    result.cancelled = True
                    logger.info("Price fetch cancelled — %s", result)
                    break
            else:
                time.sleep(delay_seconds)
        looked_up = True

        search_term = material.get("search_term") or material.get("name") or ""
        try:
            response = lookup(search_term)
        except PricingUnavailableError as e:
            logger.warning("Price source unavailable after %s: %s", result, e)
            raise ReconciliationError(str(e), result)
        except Exception as e:
            logger.warning("Price lookup failed for %r: %s", search_term, e)
            response = None

        price = _found_price(response)
        if price is None:
            result.failed += 1
        else:
            _apply_price(material, dict(response, price=price), rename)
            result.fetched += 1

        if on_progress:
            on_progress(materials, result.counts())

    logger.info("Price fetch finished — %s", result)
    return result
