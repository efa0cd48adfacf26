"""Source image download client."""

from dataclasses import dataclass
from urllib.parse import urljoin

import httpx

from photo_enhancer.domain.photos import FetchedImage
from photo_enhancer.errors import ImageFetchError, ValidationError
from photo_enhancer.services.enhancement import ImageFetcher
from photo_enhancer.services.images import (
    SUPPORTED_MIME_TYPES,
    detect_mime_type,
    normalize_mime_type,
)

DEFAULT_MAX_BYTES = 10 * 1024 * 1024


def resolve_image_url(url: str, base_url: str | None) -> str:
    """Resolve a relative source URL against the public base URL."""
    if url.startswith(("http://", "https://")):
        return url
    if not base_url:
        raise ValidationError(f"Cannot resolve relative image URL: {url}")
    return urljoin(base_url.rstrip("/") + "/", url.lstrip("/"))


@dataclass
class HttpxImageFetcher(ImageFetcher):
    """Image fetcher using httpx.

    Declared size and type are checked from the response headers before the
    body is read; the streamed body is capped at ``max_bytes`` as well.
    """

    http_client: httpx.AsyncClient
    max_bytes: int = DEFAULT_MAX_BYTES
    public_base_url: str | None = None

    @classmethod
    def create(
        cls, max_bytes: int = DEFAULT_MAX_BYTES, public_base_url: str | None = None
    ) -> "HttpxImageFetcher":
        """Create an image fetcher with a managed httpx session."""
        return cls(
            http_client=httpx.AsyncClient(follow_redirects=True),
            max_bytes=max_bytes,
            public_base_url=public_base_url,
        )

    async def fetch(self, url: str) -> FetchedImage:
        """Download and validate the image at ``url``."""
        resolved = resolve_image_url(url, self.public_base_url)
        try:
            async with self.http_client.stream("GET", resolved) as response:
                _check_status(response)
                mime_type = self._check_headers(response)
                content = await self._read_capped(response)
        except httpx.HTTPError as exc:
            raise ImageFetchError(f"Failed to download image: {exc}") from exc

        detected = detect_mime_type(content)
        if detected is None:
            raise ValidationError("Downloaded file is not a supported image")
        if detected != mime_type:
            raise ValidationError(
                f"Image content ({detected}) does not match declared type ({mime_type})"
            )
        return FetchedImage(content=content, mime_type=detected)

    def _check_headers(self, response: httpx.Response) -> str:
        mime_type = normalize_mime_type(response.headers.get("content-type"))
        if mime_type not in SUPPORTED_MIME_TYPES:
            raise ValidationError(
                f"Invalid file type: {mime_type or 'unknown'}. "
                "Only JPEG, PNG, and WebP are allowed."
            )
        declared = response.headers.get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.max_bytes:
            raise ValidationError(_too_large(self.max_bytes))
        return mime_type

    async def _read_capped(self, response: httpx.Response) -> bytes:
        chunks: list[bytes] = []
        received = 0
        async for chunk in response.aiter_bytes():
            received += len(chunk)
            if received > self.max_bytes:
                raise ValidationError(_too_large(self.max_bytes))
            chunks.append(chunk)
        return b"".join(chunks)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def _check_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    message = f"Failed to download image: HTTP {response.status_code}"
    if response.is_client_error:
        raise ValidationError(message)
    raise ImageFetchError(message)


def _too_large(max_bytes: int) -> str:
    return f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB."
