"""Prompts, response parsing and directive building for AI enhancement."""

import json
import logging
import re

import pydantic

from photo_enhancer.domain.analysis import DEFAULT_ANALYSIS, AnalysisResult

_logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[^{}]*\}", re.DOTALL)

ANALYSIS_PROMPT = (
    "Analyze this photo and provide enhancement recommendations. "
    "Respond with a JSON object containing numeric values on a 0-100 scale "
    'for "brightness", "contrast", "saturation" and "sharpness", booleans '
    '"needs_color_correction" and "needs_noise_reduction", and a "confidence" '
    "score (0-100) based on image quality and clarity."
)

BASE_DIRECTIVE = (
    "Recreate this photograph exactly, keeping the people, their poses and the "
    "entire scene unchanged, but give it a professional modern makeover. "
    "Use soft, professional lighting that adds depth, remove glare, render "
    "natural skin and crisp textures, and give it the clear, wide dynamic "
    "range of a modern digital camera."
)

_ALIASES = {
    "needsColorCorrection": "needs_color_correction",
    "needsNoiseReduction": "needs_noise_reduction",
}


def parse_analysis(raw_text: str | None) -> AnalysisResult | None:
    """Parse an analysis response, returning None when it is unusable."""
    if not raw_text:
        return None
    match = _JSON_OBJECT.search(raw_text)
    if match is None:
        return None
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    normalized = {_ALIASES.get(key, key): value for key, value in payload.items()}
    merged = DEFAULT_ANALYSIS.model_dump() | {
        key: value for key, value in normalized.items() if value is not None
    }
    try:
        return AnalysisResult.model_validate(merged)
    except pydantic.ValidationError:
        return None


def analysis_or_default(raw_text: str | None) -> tuple[AnalysisResult, bool]:
    """Return the parsed analysis and whether defaults had to be used."""
    parsed = parse_analysis(raw_text)
    if parsed is None:
        preview = (raw_text or "")[:200]
        _logger.warning(
            "Unparseable analysis response, using defaults",
            extra={"response_preview": preview},
        )
        return DEFAULT_ANALYSIS, True
    return parsed, False


def build_directive(analysis: AnalysisResult, *, used_defaults: bool) -> str:
    """Build the generation prompt for an analyzed photo."""
    if used_defaults:
        return BASE_DIRECTIVE

    adjustments: list[str] = []
    if analysis.brightness < 45:
        adjustments.append("brighten the exposure and lift the shadows")
    elif analysis.brightness > 70:
        adjustments.append("recover blown highlights")
    if analysis.contrast < 45:
        adjustments.append("add contrast")
    if analysis.saturation < 45:
        adjustments.append("make the faded colors rich and vibrant")
    if analysis.sharpness < 45:
        adjustments.append("sharpen fine detail")
    if analysis.needs_color_correction:
        adjustments.append("correct color casts")
    if analysis.needs_noise_reduction:
        adjustments.append("reduce noise and grain")
    if not adjustments:
        return BASE_DIRECTIVE
    return f"{BASE_DIRECTIVE} Specifically: {'; '.join(adjustments)}."
