"""
Normalization of parsed model output into an AnalysisResult.

normalize_nutrition() never raises. Whatever the model sent is first sorted
into one of three shapes (a usable dish list, flat totals only, or nothing),
and each shape has one repair branch:

- dish list: keep dishes with a non-blank name, coerce their nutrition
- totals only: one "Unidentified food items" dish built from the flat
  legacy fields, falling back to the total object
- nothing: the same placeholder dish with zero nutrition

Coercion rules for every nutrition number: missing, non-numeric and
non-finite values become 0, negatives clamp to 0, energy rounds half-up to an
integer and gram values round half-up to 2 decimals.
"""

import logging
import math
import sys
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation
from typing import Any

from app.services.ai_schemas import (
    AnalysisResult,
    Dish,
    DishListResponse,
    DishNutrition,
    EmptyResponse,
    NutritionQuantity,
    NutritionTotal,
    RawNutritionResponse,
    TotalOnlyResponse,
)

logger = logging.getLogger(__name__)

FALLBACK_DISH_NAME = "Unidentified food items"

ENERGY_UNIT = "kcal"
MASS_UNIT = "g"

# Raw model keys, in output order
RAW_FIELDS = ("calories", "protein_g", "carbs_g", "fat_g")

# Canonical attribute -> raw model key
FIELD_MAP = {
    "calories": "calories",
    "protein": "protein_g",
    "carbs": "carbs_g",
    "fat": "fat_g",
}

# Wide enough to quantize anything a float can hold
_CONTEXT = Context(prec=400, rounding=ROUND_HALF_UP)
_ZERO = Decimal(0)
_ENERGY_STEP = Decimal("1")
_MASS_STEP = Decimal("0.01")
_FLOAT_MAX = Decimal(sys.float_info.max)


# =============================================================================
# NUMBER COERCION
# =============================================================================


def to_decimal(value: Any) -> Decimal:
    """Coerce a loosely typed nutrition value to a non-negative Decimal."""
    if isinstance(value, bool):
        return _ZERO

    if isinstance(value, Decimal):
        number = value if value.is_finite() else _ZERO
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        number = Decimal(repr(value)) if math.isfinite(value) else _ZERO
    elif isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return _ZERO
        number = Decimal(repr(parsed)) if math.isfinite(parsed) else _ZERO
    else:
        return _ZERO

    return number if number > 0 else _ZERO


def _quantize(number: Decimal, step: Decimal) -> Decimal:
    try:
        return number.quantize(step, context=_CONTEXT)
    except InvalidOperation:
        return _ZERO


def _clamp_to_float_range(number: Decimal) -> Decimal:
    """Sums of huge values can leave float range; cap them at the largest float."""
    if number > _FLOAT_MAX:
        logger.warning("Nutrition value %s exceeds float range, clamping", number)
        return _FLOAT_MAX
    return number


def energy_quantity(value: Any) -> NutritionQuantity:
    rounded = _quantize(_clamp_to_float_range(to_decimal(value)), _ENERGY_STEP)
    return NutritionQuantity(value=int(rounded), unit=ENERGY_UNIT)


def mass_quantity(value: Any) -> NutritionQuantity:
    rounded = _quantize(_clamp_to_float_range(to_decimal(value)), _MASS_STEP)
    return NutritionQuantity(value=float(rounded), unit=MASS_UNIT)


def format_nutrition(raw: Any) -> DishNutrition:
    """Coerce a raw {calories, protein_g, carbs_g, fat_g} mapping."""
    if not isinstance(raw, dict):
        raw = {}
    return DishNutrition(
        calories=energy_quantity(raw.get("calories")),
        protein=mass_quantity(raw.get("protein_g")),
        carbs=mass_quantity(raw.get("carbs_g")),
        fat=mass_quantity(raw.get("fat_g")),
    )


# =============================================================================
# RESPONSE SHAPE
# =============================================================================


def _has_usable_name(entry: Any) -> bool:
    return (
        isinstance(entry, dict)
        and isinstance(entry.get("name"), str)
        and entry["name"].strip() != ""
    )


def classify_response(parsed: Any) -> RawNutritionResponse:
    """Sort a parsed model response into exactly one repair branch."""
    if not isinstance(parsed, dict):
        return EmptyResponse()

    total = parsed.get("total")
    if not isinstance(total, dict):
        total = None

    dishes = parsed.get("dishes")
    if isinstance(dishes, list):
        usable = [entry for entry in dishes if _has_usable_name(entry)]
        if usable:
            return DishListResponse(dishes=usable, total=total)

    legacy = {key: parsed[key] for key in RAW_FIELDS if key in parsed}
    if legacy or total is not None:
        return TotalOnlyResponse(legacy=legacy, total=total)

    return EmptyResponse()


# =============================================================================
# DISHES AND TOTALS
# =============================================================================


def _is_set(value: Any) -> bool:
    """A raw value counts as given unless it is missing, empty, zero or NaN."""
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (int, float)) and (value == 0 or value != value):
        return False
    return True


def fallback_dish(legacy: dict, total: dict | None) -> Dish:
    """
    Placeholder dish for responses without usable dishes.

    Per field, a given top-level legacy value wins over the total object, even
    when it then coerces to 0 (a negative or non-numeric value).
    """
    total = total or {}
    chosen = {}
    for key in RAW_FIELDS:
        raw = legacy.get(key)
        chosen[key] = to_decimal(raw if _is_set(raw) else total.get(key))

    return Dish(name=FALLBACK_DISH_NAME, nutrition=format_nutrition(chosen))


def sum_dishes(dishes: list[Dish]) -> NutritionTotal:
    """Exact field-wise sum of the dishes' rounded values."""
    sums = {key: _ZERO for key in RAW_FIELDS}
    for dish in dishes:
        for attr, key in FIELD_MAP.items():
            quantity = getattr(dish.nutrition, attr)
            sums[key] = _CONTEXT.add(sums[key], Decimal(str(quantity.value)))
    return format_nutrition(sums)


def normalize_nutrition(parsed: Any) -> AnalysisResult:
    """
    Build a structurally valid AnalysisResult from any parsed model output.

    A model-supplied total object is used as given (after coercion) even if it
    differs from the dish sum; otherwise the total is the sum of the dishes.
    """
    shape = classify_response(parsed)

    if isinstance(shape, DishListResponse):
        dishes = [
            Dish(
                name=entry["name"].strip(),
                nutrition=format_nutrition(entry.get("nutrition")),
            )
            for entry in shape.dishes
        ]
        supplied_total = shape.total
    elif isinstance(shape, TotalOnlyResponse):
        dishes = [fallback_dish(shape.legacy, shape.total)]
        supplied_total = shape.total
    else:
        dishes = [fallback_dish({}, None)]
        supplied_total = None

    if supplied_total is not None:
        total = format_nutrition(supplied_total)
    else:
        total = sum_dishes(dishes)

    logger.debug(
        "Normalized %s response into %d dish(es), total supplied=%s",
        shape.kind,
        len(dishes),
        supplied_total is not None,
    )

    return AnalysisResult(dishes=dishes, total=total)
