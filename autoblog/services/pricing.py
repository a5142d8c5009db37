"""
Provider pricing reference data and cost calculation.
Text prices are USD per 1M tokens; image prices are USD per image.
"""
import logging

logger = logging.getLogger(__name__)

MODEL_PRICING: dict[str, dict[str, float]] = {
    "gpt-5.1": {"input": 1.25, "output": 10.00},
    "gpt-5": {"input": 1.25, "output": 10.00},
    "gpt-5-mini": {"input": 0.25, "output": 2.00},
    "gpt-5-nano": {"input": 0.05, "output": 0.40},
    "gpt-5-pro": {"input": 15.00, "output": 120.00},
    "gpt-4.1": {"input": 2.00, "output": 8.00},
    "gpt-4.1-mini": {"input": 0.40, "output": 1.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4-turbo": {"input": 10.00, "output": 30.00},
}

IMAGE_PRICING: dict[str, dict[str, float]] = {
    "dall-e-3": {
        "1024x1024": 0.04,
        "1792x1024": 0.08,
        "1024x1792": 0.08,
    },
    "dall-e-2": {
        "1024x1024": 0.02,
        "512x512": 0.018,
        "256x256": 0.016,
    },
}

# Models whose price doubles for quality="hd" and which accept quality/style
IMAGE_MODEL_OPTIONS: dict[str, dict[str, bool]] = {
    "dall-e-3": {"hd_multiplier": True, "quality": True, "style": True},
    "dall-e-2": {"hd_multiplier": False, "quality": False, "style": False},
}

HD_MULTIPLIER = 2


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Cost in USD for a text completion. Unknown models cost 0.0."""
    pricing = MODEL_PRICING.get(model)
    if pricing is None:
        logger.debug("No pricing for model %s, recording zero cost", model)
        return 0.0
    input_cost = pricing["input"] / 1_000_000 * prompt_tokens
    output_cost = pricing["output"] / 1_000_000 * completion_tokens
    return round(input_cost + output_cost, 6)


def calculate_image_cost(model: str, size: str, quality: str = "standard") -> float:
    """Cost in USD for one generated image. Unknown model/size costs 0.0."""
    price = IMAGE_PRICING.get(model, {}).get(size)
    if price is None:
        return 0.0
    if quality == "hd" and IMAGE_MODEL_OPTIONS.get(model, {}).get("hd_multiplier"):
        price *= HD_MULTIPLIER
    return round(price, 6)
