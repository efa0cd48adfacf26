"""OpenAI client for image analysis and enhancement."""

import base64
import binascii
from dataclasses import dataclass

import openai
from openai import AsyncOpenAI

from photo_enhancer.errors import ProviderError
from photo_enhancer.services.analysis import ANALYSIS_PROMPT
from photo_enhancer.services.enhancement import EnhancementClient
from photo_enhancer.services.images import artifact_filename, to_data_url

_TOO_MANY_REQUESTS = 429


@dataclass
class OpenAIEnhancementClient(EnhancementClient):
    """Enhancement client backed by the OpenAI Responses and Images APIs.

    Retries are owned by the caller's retry policy, so the SDK's own retries
    are disabled in ``create``.
    """

    client: AsyncOpenAI
    analysis_model: str = "gpt-4.1-mini"
    image_model: str = "gpt-image-1"

    @classmethod
    def create(
        cls, api_key: str, analysis_model: str, image_model: str
    ) -> "OpenAIEnhancementClient":
        """Create an OpenAI enhancement client."""
        return cls(
            client=AsyncOpenAI(api_key=api_key, max_retries=0),
            analysis_model=analysis_model,
            image_model=image_model,
        )

    async def analyze(self, image: bytes, mime_type: str) -> str:
        """Ask the vision model for quality scores as JSON text."""
        try:
            response = await self.client.responses.create(
                model=self.analysis_model,
                input=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "input_text", "text": ANALYSIS_PROMPT},
                            {
                                "type": "input_image",
                                "image_url": to_data_url(image, mime_type),
                            },
                        ],
                    }
                ],
                store=False,
            )
        except openai.OpenAIError as exc:
            raise _provider_error("analysis", exc) from exc
        return response.output_text or ""

    async def generate(self, image: bytes, mime_type: str, directive: str) -> bytes:
        """Edit the image with the directive and return the result bytes."""
        filename = artifact_filename(mime_type, prefix="source")
        try:
            response = await self.client.images.edit(
                model=self.image_model,
                image=(filename, image, mime_type),
                prompt=directive,
            )
        except openai.OpenAIError as exc:
            raise _provider_error("generation", exc) from exc
        if not response.data or not response.data[0].b64_json:
            return b""
        try:
            return base64.b64decode(response.data[0].b64_json)
        except binascii.Error as exc:
            raise ProviderError(f"AI generation returned invalid image data: {exc}") from exc


def _provider_error(step: str, exc: openai.OpenAIError) -> ProviderError:
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        retryable = status == _TOO_MANY_REQUESTS or status >= 500
        return ProviderError(
            f"AI {step} failed with HTTP {status}: {exc.message}", retryable=retryable
        )
    return ProviderError(f"AI {step} failed: {exc}")
