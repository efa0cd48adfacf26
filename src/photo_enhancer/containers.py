"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from photo_enhancer.adapters.image_fetcher import HttpxImageFetcher
from photo_enhancer.adapters.memory import InMemoryLedgerRepository, InMemoryPhotoRepository
from photo_enhancer.adapters.openai_enhancement_client import OpenAIEnhancementClient
from photo_enhancer.adapters.stripe_events import StripeEventSource
from photo_enhancer.adapters.supabase_artifact_store import SupabaseArtifactStore
from photo_enhancer.adapters.supabase_ledger_repository import SupabaseLedgerRepository
from photo_enhancer.adapters.supabase_photo_repository import SupabasePhotoRepository
from photo_enhancer.api.auth import (
    AccountHeaderAuthenticator,
    Authenticator,
    ServiceTokenAuthenticator,
)
from photo_enhancer.config import Settings
from photo_enhancer.services.cache import InMemoryCache
from photo_enhancer.services.enhancement import EnhancementOrchestrator, PhotoRepository
from photo_enhancer.services.ledger import CreditLedger, LedgerRepository
from photo_enhancer.services.payments import PaymentWebhookProcessor
from photo_enhancer.services.rate_limit import RateLimiter
from photo_enhancer.services.resilience import RetryConfig, RetryPolicy


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    orchestrator: EnhancementOrchestrator
    ledger: CreditLedger
    payment_processor: PaymentWebhookProcessor
    payment_events: StripeEventSource
    rate_limiter: RateLimiter
    authenticators: list[Authenticator]
    close_resources: Callable[[], Awaitable[None]]


def build_retry_policies(settings: Settings) -> tuple[RetryPolicy, RetryPolicy]:
    """Return the AI and storage retry policies described by settings."""
    ai_retry = RetryPolicy(
        RetryConfig(
            max_attempts=settings.ai_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            backoff_multiplier=settings.retry_backoff_multiplier,
            per_attempt_timeout=settings.ai_timeout_seconds,
            max_jitter=settings.retry_max_jitter_seconds,
        )
    )
    storage_retry = RetryPolicy(
        RetryConfig(
            max_attempts=settings.storage_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            backoff_multiplier=settings.retry_backoff_multiplier,
            per_attempt_timeout=settings.storage_timeout_seconds,
            max_jitter=settings.retry_max_jitter_seconds,
        )
    )
    return ai_retry, storage_retry


def build_authenticators(settings: Settings) -> list[Authenticator]:
    """Return the ordered authenticator chain."""
    authenticators: list[Authenticator] = []
    if settings.internal_service_token:
        authenticators.append(ServiceTokenAuthenticator(settings.internal_service_token))
    authenticators.append(AccountHeaderAuthenticator())
    return authenticators


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    photo_repository: PhotoRepository
    ledger_repository: LedgerRepository
    if resolved_settings.persistence_backend == "memory":
        photo_repository = InMemoryPhotoRepository()
        ledger_repository = InMemoryLedgerRepository()
    else:
        photo_repository = SupabasePhotoRepository(supabase_client)
        ledger_repository = SupabaseLedgerRepository(supabase_client)

    ledger = CreditLedger(
        repository=ledger_repository,
        enhancement_cost=resolved_settings.enhancement_cost,
        free_allotment=resolved_settings.free_enhancement_allotment,
    )
    fetcher = HttpxImageFetcher.create(
        max_bytes=resolved_settings.max_image_bytes,
        public_base_url=resolved_settings.public_base_url,
    )
    enhancement_client = OpenAIEnhancementClient.create(
        api_key=resolved_settings.openai_api_key,
        analysis_model=resolved_settings.openai_analysis_model,
        image_model=resolved_settings.openai_image_model,
    )
    ai_retry, storage_retry = build_retry_policies(resolved_settings)
    orchestrator = EnhancementOrchestrator(
        photo_repository=photo_repository,
        ledger=ledger,
        fetcher=fetcher,
        client=enhancement_client,
        store=SupabaseArtifactStore(supabase_client, resolved_settings.storage_bucket),
        ai_retry=ai_retry,
        storage_retry=storage_retry,
        fetch_timeout_seconds=resolved_settings.fetch_timeout_seconds,
        total_budget_seconds=resolved_settings.pipeline_budget_seconds,
    )
    rate_limiter = RateLimiter(
        cache=InMemoryCache(),
        limit=resolved_settings.enhance_rate_limit,
        window_seconds=resolved_settings.enhance_rate_window_seconds,
    )

    async def close_resources() -> None:
        await orchestrator.drain()
        await fetcher.close()
        await enhancement_client.client.close()

    return AppContainer(
        settings=resolved_settings,
        orchestrator=orchestrator,
        ledger=ledger,
        payment_processor=PaymentWebhookProcessor(ledger),
        payment_events=StripeEventSource(resolved_settings.stripe_webhook_secret),
        rate_limiter=rate_limiter,
        authenticators=build_authenticators(resolved_settings),
        close_resources=close_resources,
    )
