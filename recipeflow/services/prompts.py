from __future__ import annotations

LANGUAGE_NAMES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
}


def recipe_extraction_instruction(language: str) -> str:
    target_language = LANGUAGE_NAMES.get(language, language)
    return f"""You are a recipe extraction assistant. Your task is to read raw recipe text and extract structured recipe data in JSON format. The JSON must strictly follow this schema:
{{
  "title": "string",
  "ingredients": [
    {{
      "name": "string",
      "quantity": "string",
      "unit": "string",
      "stepMapping": [number, ...]
    }}
  ],
  "instructions": ["string", ...],
  "prep_time": "string",
  "cook_time": "string",
  "servings": "string"
}}

Formatting guidelines for ingredients:
1. Quantity:
   - Convert fractional quantities (e.g. "1 1/2") into a decimal string (e.g. "1.5").
   - The quantity must be a string that can be parsed as a number.
2. Unit of measurement:
   - Use the singular forms "cup", "tablespoon" and "teaspoon".
   - For countable items, use "each".
   - For weights, use singular forms such as "gram" or "kilogram".
3. Step mapping:
   - If an ingredient is used in specific steps, include "stepMapping" with the 1-based indices of those steps.
   - Otherwise omit "stepMapping".
4. Language:
   - Return all output in {target_language}.

Your output must be strictly JSON with no additional commentary."""


NUTRITION_INSTRUCTION = (
    "You are a helpful assistant that provides nutritional information based on "
    "given ingredients and serving size. Answer with JSON only."
)


def nutrition_request(ingredients_text: str, servings: str) -> str:
    return (
        f"Given the following ingredients: {ingredients_text}, and that the recipe serves "
        f"{servings}, provide the nutritional information per serving as JSON. The JSON "
        'should have the keys: "calories", "fat", "carbs", and "protein" (all as string '
        'values including the unit, e.g. "320 kcal", "12 g").'
    )


OCR_INSTRUCTION = (
    "Transcribe all text visible in this photo of a recipe. Keep the original "
    "order and line breaks. Output only the transcribed text."
)


def recipe_image_prompt(title: str, cuisine: str, main_ingredients: list[str], vessel: str) -> str:
    ingredients_text = ", ".join(main_ingredients) if main_ingredients else "seasonal ingredients"
    article = "an" if cuisine and cuisine[0].lower() in "aeiou" else "a"
    return (
        f"Create a photorealistic image of {title}, {article} {cuisine} dish with {ingredients_text}. "
        f"Show the finished dish served on a {vessel} with appropriate garnishes. "
        "The image should be well-lit, professionally photographed from a top-down angle, "
        "with shallow depth of field and food styling that makes the dish look appetizing."
    )
