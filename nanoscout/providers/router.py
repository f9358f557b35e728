"""Ordered fallback across configured inference providers."""

from typing import TYPE_CHECKING

from loguru import logger

from nanoscout.config.schema import InferenceProviderConfig
from nanoscout.errors import NoInferenceProviderError
from nanoscout.providers.base import (
    InferenceClient,
    InferenceContext,
    InferenceProviderOptions,
    InferenceResult,
    LLMResponse,
)
from nanoscout.providers.registry import InferenceRegistry

if TYPE_CHECKING:
    from nanoscout.config.auth import AuthStore


class InferenceObserver:
    """
    Hooks around one routed completion. Override what you need.

    For a single ``complete`` call: ``on_fallback`` fires once per provider
    whose client could not be built, ``on_attempt`` fires once for the
    provider actually called, followed by exactly one of ``on_success`` or
    ``on_failure``.
    """

    def on_attempt(self, provider_id: str, model_id: str) -> None:
        pass

    def on_fallback(self, provider_id: str, error: Exception) -> None:
        pass

    def on_success(self, provider_id: str, model_id: str, response: LLMResponse) -> None:
        pass

    def on_failure(self, provider_id: str, error: Exception) -> None:
        pass


class InferenceRouter:
    """Tries providers strictly in configured order for each request."""

    def __init__(
        self,
        providers: list[InferenceProviderConfig],
        registry: InferenceRegistry,
        auth: "AuthStore",
    ):
        self.providers = list(providers)
        self.registry = registry
        self.auth = auth

    def update_providers(self, providers: list[InferenceProviderConfig]) -> None:
        self.providers = list(providers)

    async def complete(
        self,
        context: InferenceContext,
        session_id: str,
        observer: InferenceObserver | None = None,
    ) -> InferenceResult:
        observer = observer or InferenceObserver()
        last_error: Exception | None = None

        for config in self.providers:
            provider = self.registry.get(config.id)
            if provider is None:
                logger.warning(f"Missing inference provider: {config.id}")
                continue

            try:
                client: InferenceClient = await provider.create_client(
                    InferenceProviderOptions(
                        provider_id=config.id,
                        auth=self.auth,
                        logger=logger.bind(provider=config.id),
                        model=config.model,
                        config=dict(config.options),
                    )
                )
            except Exception as e:
                last_error = e
                observer.on_fallback(config.id, e)
                continue

            # Once a client exists its failure ends the turn; later providers are not tried.
            observer.on_attempt(config.id, client.model_id)
            try:
                response = await client.complete(context, session_id)
            except Exception as e:
                observer.on_failure(config.id, e)
                raise
            observer.on_success(config.id, client.model_id, response)
            return InferenceResult(response=response, provider_id=config.id, model_id=client.model_id)

        raise NoInferenceProviderError() from last_error
