"""
Pydantic models for meal nutrition analysis.

Two groups live here:
- The canonical result (AnalysisResult and its parts), which is what the
  pipeline returns and what the API serializes.
- The raw response shapes, a discriminated union that the normalizer uses to
  pick exactly one repair branch for whatever the model sent back.
"""

import math
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


# --- Canonical result ---


class NutritionQuantity(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: Union[int, float]
    unit: str

    @field_validator("value")
    @classmethod
    def value_must_be_finite_and_non_negative(cls, v):
        if isinstance(v, bool) or not math.isfinite(v) or v < 0:
            raise ValueError("nutrition value must be a finite, non-negative number")
        return v


class DishNutrition(BaseModel):
    model_config = ConfigDict(frozen=True)

    calories: NutritionQuantity
    protein: NutritionQuantity
    carbs: NutritionQuantity
    fat: NutritionQuantity


# Same shape as a dish's nutrition; kept as its own name for readability
NutritionTotal = DishNutrition


class Dish(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    nutrition: DishNutrition

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("dish name must not be blank")
        return v


class AnalysisResult(BaseModel):
    """
    Normalized meal analysis.

    dishes and total are the source of truth. The flat legacy fields are
    computed from them on access (and on model_dump), so the two views cannot
    drift apart.
    """

    model_config = ConfigDict(frozen=True)

    dishes: list[Dish] = Field(min_length=1)
    total: NutritionTotal

    @computed_field
    @property
    def detected_food_items(self) -> list[str]:
        return [dish.name for dish in self.dishes]

    @computed_field
    @property
    def calories(self) -> Union[int, float]:
        return self.total.calories.value

    @computed_field
    @property
    def protein_g(self) -> Union[int, float]:
        return self.total.protein.value

    @computed_field
    @property
    def carbs_g(self) -> Union[int, float]:
        return self.total.carbs.value

    @computed_field
    @property
    def fat_g(self) -> Union[int, float]:
        return self.total.fat.value


# --- Raw model response shapes (normalizer input) ---


class DishListResponse(BaseModel):
    """At least one dish entry has a usable name."""

    kind: Literal["dish_list"] = "dish_list"
    dishes: list[dict]
    total: dict | None = None


class TotalOnlyResponse(BaseModel):
    """No usable dishes, but flat legacy fields and/or a total object exist."""

    kind: Literal["total_only"] = "total_only"
    legacy: dict = {}
    total: dict | None = None


class EmptyResponse(BaseModel):
    """Nothing usable at all."""

    kind: Literal["empty"] = "empty"


RawNutritionResponse = Annotated[
    DishListResponse | TotalOnlyResponse | EmptyResponse,
    Field(discriminator="kind"),
]
