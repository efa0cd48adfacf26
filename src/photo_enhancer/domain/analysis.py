"""Models for AI photo analysis results."""

from pydantic import BaseModel, Field, field_validator

_SCORE_FIELDS = ("brightness", "contrast", "saturation", "sharpness", "confidence")


class AnalysisResult(BaseModel):
    """Scores describing how a photo should be enhanced."""

    brightness: float = Field(ge=0.0, le=100.0)
    contrast: float = Field(ge=0.0, le=100.0)
    saturation: float = Field(ge=0.0, le=100.0)
    sharpness: float = Field(ge=0.0, le=100.0)
    needs_color_correction: bool
    needs_noise_reduction: bool
    confidence: float = Field(ge=0.0, le=100.0)

    @field_validator(*_SCORE_FIELDS, mode="before")
    @classmethod
    def _clamp_score(cls, value: object) -> object:
        if isinstance(value, bool) or not isinstance(value, int | float):
            return value
        return max(0.0, min(100.0, float(value)))


DEFAULT_ANALYSIS = AnalysisResult(
    brightness=55,
    contrast=60,
    saturation=55,
    sharpness=50,
    needs_color_correction=True,
    needs_noise_reduction=True,
    confidence=75,
)
