import logging
from time import perf_counter

from grc_ai.config.settings import Settings
from grc_ai.core.errors import AppError, EmptyResponseError
from grc_ai.identity.resolver import CallerIdentity, IdentityResolver
from grc_ai.metrics import record_dispatch
from grc_ai.models.dispatch import DispatchResponse, PromptRequest, Usage
from grc_ai.prompts.assembly import AssembledPrompt, PromptAssembler
from grc_ai.providers.base import AdapterResult, ProviderError
from grc_ai.providers.registry import AdapterRegistry
from grc_ai.providers.resolution import ProviderResolver, ResolvedProvider
from grc_ai.storage.base import Store, UsageRecord
from grc_ai.usage.recorder import UsageRecorder

logger = logging.getLogger("grc.dispatch")


class DispatchService:
    """Run identity, provider resolution, prompt assembly, invocation and usage logging."""

    def __init__(
        self,
        settings: Settings,
        store: Store,
        identity_resolver: IdentityResolver,
        provider_resolver: ProviderResolver,
        prompt_assembler: PromptAssembler,
        adapter_registry: AdapterRegistry,
        usage_recorder: UsageRecorder,
    ):
        self._settings = settings
        self._store = store
        self._identity_resolver = identity_resolver
        self._provider_resolver = provider_resolver
        self._prompt_assembler = prompt_assembler
        self._adapter_registry = adapter_registry
        self._usage_recorder = usage_recorder

    async def handle(
        self, request_id: str, authorization: str | None, payload: PromptRequest
    ) -> DispatchResponse:
        started = perf_counter()
        caller: CallerIdentity | None = None
        resolved: ResolvedProvider | None = None
        try:
            caller = self._identity_resolver.resolve(authorization)
            resolved = self._provider_resolver.resolve(caller.tenant_id)
            prompt = self._prompt_assembler.assemble(
                prompt=payload.prompt,
                type_tag=payload.type,
                system_prompt=payload.system_prompt,
                context=payload.context,
            )
            result = await self._invoke(caller, resolved, prompt)
        except AppError as exc:
            self._log_failure(request_id, caller, resolved, exc, started)
            raise

        assert caller is not None and resolved is not None
        latency_ms = int((perf_counter() - started) * 1000)
        logger.info(
            "dispatch_completed",
            extra={
                "request_id": request_id,
                "tenant_id": caller.tenant_id,
                "user_id": caller.user_id,
                "provider_id": resolved.config.id,
                "provider_type": resolved.config.provider_type,
                "provider_source": resolved.source,
                "prompt_type": prompt.prompt_type,
                "prompt_source": prompt.source,
                "latency_ms": latency_ms,
                "token_in": result.usage["prompt_tokens"],
                "token_out": result.usage["completion_tokens"],
            },
        )
        if self._settings.metrics_enabled:
            record_dispatch(
                provider_type=resolved.config.provider_type,
                source=resolved.source,
                outcome="success",
                latency_s=latency_ms / 1000.0,
                tokens_in=result.usage["prompt_tokens"],
                tokens_out=result.usage["completion_tokens"],
            )
        return DispatchResponse(response=result.response_text, usage=Usage(**result.usage))

    async def _invoke(
        self,
        caller: CallerIdentity,
        resolved: ResolvedProvider,
        prompt: AssembledPrompt,
    ) -> AdapterResult:
        adapter = self._adapter_registry.dispatch(resolved.config)
        upstream_started = perf_counter()
        try:
            result = await adapter.invoke(resolved.config, prompt)
        except ProviderError as exc:
            self._record_usage(caller, resolved, prompt, upstream_started, error=exc.message)
            raise self._app_error_from_provider_error(exc) from exc
        except EmptyResponseError as exc:
            self._record_usage(caller, resolved, prompt, upstream_started, error=exc.message)
            raise

        self._record_usage(caller, resolved, prompt, upstream_started, result=result)
        return result

    def _record_usage(
        self,
        caller: CallerIdentity,
        resolved: ResolvedProvider,
        prompt: AssembledPrompt,
        upstream_started: float,
        result: AdapterResult | None = None,
        error: str | None = None,
    ) -> None:
        usage = result.usage if result is not None else {}
        self._usage_recorder.record(
            UsageRecord(
                user_id=caller.user_id,
                tenant_id=caller.tenant_id,
                provider_id=resolved.config.id,
                prompt_text=prompt.user_prompt,
                response_text=result.response_text if result is not None else "",
                tokens_input=usage.get("prompt_tokens", 0),
                tokens_output=usage.get("completion_tokens", 0),
                total_tokens=usage.get("total_tokens", 0),
                module_name=prompt.prompt_type,
                status="success" if error is None else "error",
                error_message=error,
                response_time_ms=int((perf_counter() - upstream_started) * 1000),
            )
        )

    def _log_failure(
        self,
        request_id: str,
        caller: CallerIdentity | None,
        resolved: ResolvedProvider | None,
        exc: AppError,
        started: float,
    ) -> None:
        latency_ms = int((perf_counter() - started) * 1000)
        logger.warning(
            "dispatch_failed",
            extra={
                "request_id": request_id,
                "tenant_id": caller.tenant_id if caller else None,
                "user_id": caller.user_id if caller else None,
                "provider_id": resolved.config.id if resolved else None,
                "provider_type": resolved.config.provider_type if resolved else None,
                "latency_ms": latency_ms,
                "error_code": exc.code,
            },
        )
        if self._settings.metrics_enabled:
            record_dispatch(
                provider_type=resolved.config.provider_type if resolved else "none",
                source=resolved.source if resolved else "none",
                outcome=exc.code,
                latency_s=latency_ms / 1000.0,
            )

    def readiness(self) -> dict[str, str]:
        return {
            "store": "ok" if self._store.ping() else "unreachable",
            "usage_schema": "ok" if self._usage_recorder.schema_path.exists() else "missing",
        }

    @staticmethod
    def _app_error_from_provider_error(exc: ProviderError) -> AppError:
        return AppError(exc.status_code, exc.code, exc.error_type, exc.message)
