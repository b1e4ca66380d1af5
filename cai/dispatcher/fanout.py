"""
Fan-out Coordinator - Concurrent dispatch of one prompt to many models.

One asyncio task is started per requested model, all sharing the same
read-only PromptRequest. Every task runs to completion on its own:

1. Build the wire request (pre-flight; no network on failure)
2. Look up the credential (missing key -> Auth failure, no network)
3. Call the provider, retrying transient failures if configured

Tasks never raise into the coordinator; each one returns its own
ProviderCallResult. asyncio.gather is the only barrier and returns the
results in the order the models were requested, whatever the order in
which the calls completed.

The single-model case goes through exactly the same path.
"""

import asyncio
import logging
from collections.abc import Sequence

from cai.config import CredentialSource, Settings, get_settings
from cai.dispatcher.builder import BuildError, WireRequest, build
from cai.dispatcher.handlers import ProviderClients, call
from cai.registry.models import AliasRegistry, ModelRef, UnknownAlias
from cai.schemas.prompt import (
    TRANSIENT_ERRORS,
    ErrorKind,
    FanoutResult,
    Failure,
    OutputMode,
    PromptRequest,
    ProviderCallResult,
    UsageError,
)

logger = logging.getLogger(__name__)


class FanoutCoordinator:
    """
    Dispatch a prompt to one or many models and collect every outcome.

    Usage:
        coordinator = FanoutCoordinator(registry, CredentialSource(settings))
        result = coordinator.run(registry.all_default_models(), prompt)

    Args:
        registry: Alias registry used to resolve tokens.
        credentials: Source of per-provider API keys.
        clients: Provider client factory (default: built from settings).
        settings: Timeout and retry configuration (default: get_settings()).
    """

    def __init__(
        self,
        registry: AliasRegistry,
        credentials: CredentialSource,
        clients: ProviderClients | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._registry = registry
        self._credentials = credentials
        self._clients = clients or ProviderClients(self._settings)
        self._timeout = self._settings.request_timeout_seconds
        self._max_retries = self._settings.max_retries

    @property
    def registry(self) -> AliasRegistry:
        return self._registry

    def run(self, model_refs: Sequence[ModelRef], prompt: PromptRequest) -> FanoutResult:
        """Synchronous wrapper around dispatch() for the CLI."""
        return asyncio.run(self.dispatch(model_refs, prompt))

    def run_tokens(self, tokens: Sequence[str], prompt: PromptRequest) -> FanoutResult:
        """Synchronous wrapper around dispatch_tokens() for the CLI."""
        return asyncio.run(self.dispatch_tokens(tokens, prompt))

    async def dispatch(
        self, model_refs: Sequence[ModelRef], prompt: PromptRequest
    ) -> FanoutResult:
        """
        Dispatch a prompt to every model and wait for all of them.

        Args:
            model_refs: Models in the order their results must be reported.
            prompt: The shared prompt.

        Returns:
            FanoutResult with one entry per model, in `model_refs` order.

        Raises:
            UsageError: If no model is given, or raw output is requested
                        for more than one model.
        """
        self._check_usage(len(model_refs), prompt)
        return await self._gather([self._run_unit(ref, prompt) for ref in model_refs])

    async def dispatch_tokens(
        self, tokens: Sequence[str], prompt: PromptRequest
    ) -> FanoutResult:
        """
        Resolve tokens and dispatch; an unknown token fails only its own slot.

        Args:
            tokens: User-supplied model tokens, in output order.
            prompt: The shared prompt.

        Returns:
            FanoutResult with one entry per token.
        """
        self._check_usage(len(tokens), prompt)

        units = []
        for token in tokens:
            try:
                units.append(self._run_unit(self._registry.resolve(token), prompt))
            except UnknownAlias as e:
                logger.warning(str(e))
                units.append(self._unresolved(token, str(e)))
        return await self._gather(units)

    @staticmethod
    def _check_usage(count: int, prompt: PromptRequest) -> None:
        if count == 0:
            raise UsageError("No model to dispatch to")
        if prompt.output_mode == OutputMode.RAW and count > 1:
            raise UsageError(
                f"Raw output is defined for exactly one model, got {count}"
            )

    @staticmethod
    async def _gather(units) -> FanoutResult:
        tasks = [asyncio.create_task(unit) for unit in units]
        results = await asyncio.gather(*tasks)
        return FanoutResult(results=tuple(results))

    @staticmethod
    async def _unresolved(token: str, message: str) -> ProviderCallResult:
        return Failure(
            model_ref=None,
            error_kind=ErrorKind.UNKNOWN_ALIAS,
            message=message,
            token=token,
        )

    async def _run_unit(self, model_ref: ModelRef, prompt: PromptRequest) -> ProviderCallResult:
        """One independent unit of work: build, authenticate, call."""
        try:
            wire = build(model_ref, prompt)
        except BuildError as e:
            logger.warning(f"Pre-flight check failed for {model_ref}: {e}")
            return Failure(model_ref=model_ref, error_kind=e.error_kind, message=str(e))

        credential = self._credentials.get_key(model_ref.provider)

        try:
            return await self._call_with_retry(wire, credential)
        except Exception as e:
            logger.exception(f"Unexpected error while calling {model_ref}")
            return Failure(
                model_ref=model_ref,
                error_kind=ErrorKind.PROVIDER_ERROR,
                message=f"Unexpected error: {type(e).__name__}: {e}",
            )

    async def _call_with_retry(
        self, wire: WireRequest, credential: str | None
    ) -> ProviderCallResult:
        """
        Call the provider, retrying transient failures.

        Uses exponential backoff (1s, 2s, 4s) between attempts. Only
        Network, RateLimited and Timeout failures are retried.
        """
        attempts = self._max_retries + 1

        for attempt in range(attempts):
            result = await call(wire, credential, self._clients, self._timeout)

            if result.success or result.error_kind not in TRANSIENT_ERRORS:
                return result

            if attempt < attempts - 1:
                wait_time = 2**attempt
                logger.warning(
                    f"{wire.model_ref} failed (attempt {attempt + 1}/{attempts}), "
                    f"retrying in {wait_time}s: {result.error_kind.value}"
                )
                await asyncio.sleep(wait_time)

        return result
