"""
AI prompt templates for meal nutrition analysis.

Prompts are plain module-level strings so that any wording change shows up in
review and in the prompt tests. build_nutrition_prompt() is a pure function of
its input: the same meal text always yields the same prompt.
"""

from typing import Optional

from app.services.ai_errors import BadInputError

# =============================================================================
# MEAL NUTRITION ANALYSIS
# =============================================================================

NUTRITION_TASK_PROMPT = """You are a nutrition analysis expert.
Analyze the provided meal and estimate nutrition for each individual dish/food item separately, then provide totals."""

IMAGE_INPUT_LINE = "Meal input: An image of a meal will be provided."

TEXT_INPUT_TEMPLATE = 'Meal description: "{meal_text}"'

NUTRITION_OUTPUT_FORMAT = """Return ONLY a valid JSON object with EXACTLY this structure (no extra keys, no extra text):
{
  "dishes": [
    {
      "name": "dish name",
      "nutrition": {
        "calories": number,
        "protein_g": number,
        "carbs_g": number,
        "fat_g": number
      }
    }
  ],
  "total": {
    "calories": number,
    "protein_g": number,
    "carbs_g": number,
    "fat_g": number
  }
}"""

NUTRITION_RULES = """Rules:
- "dishes" must be an array with at least 1 dish object.
- Each dish must have a "name" (string) and "nutrition" object.
- All nutrition values must be JSON numbers (no quotes), non-negative.
- "total" must be the sum of all individual dish nutrition values.
- Do NOT wrap output in markdown or code fences.
- If uncertain, make best estimates based on typical serving sizes.
- Separate different food items into individual dishes (e.g., "rice" and "dal" should be separate dishes)."""


def build_nutrition_prompt(
    meal_text: Optional[str] = None, is_image: bool = False
) -> str:
    """
    Build the instruction prompt for a text or image meal description.

    Exactly one input mode is allowed: a non-blank meal_text, or is_image=True.
    The image itself is not part of the prompt; the caller attaches it to the
    model request.

    Raises:
        BadInputError: If neither or both input modes are given
    """
    has_text = isinstance(meal_text, str) and meal_text.strip() != ""

    if is_image and has_text:
        raise BadInputError(
            "Provide either meal text or an image, not both",
            code="invalid_meal_input",
        )
    if not is_image and not has_text:
        raise BadInputError(
            "Meal text must be a non-empty string", code="invalid_meal_text"
        )

    if is_image:
        input_line = IMAGE_INPUT_LINE
    else:
        input_line = TEXT_INPUT_TEMPLATE.format(meal_text=meal_text.strip())

    return "\n\n".join(
        [NUTRITION_TASK_PROMPT, input_line, NUTRITION_OUTPUT_FORMAT, NUTRITION_RULES]
    )
