"""Single-shot JSON POST shared by the provider adapters."""

import httpx

from grc_ai.providers.base import ProviderError

MAX_ERROR_BODY_CHARS = 500


async def post_json(
    url: str,
    body: dict[str, object],
    headers: dict[str, str],
    timeout_s: float,
    params: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, object]:
    try:
        async with httpx.AsyncClient(timeout=timeout_s, transport=transport) as client:
            resp = await client.post(url, json=body, headers=headers, params=params)
    except httpx.TimeoutException as exc:
        raise ProviderError(
            status_code=504,
            code="provider_timeout",
            message=f"Provider request timed out after {timeout_s}s",
        ) from exc
    except httpx.HTTPError as exc:
        raise ProviderError(
            status_code=502,
            code="provider_connection_error",
            message=f"Cannot connect to provider: {type(exc).__name__}",
        ) from exc

    raise_for_status(resp)

    try:
        result = resp.json()
    except ValueError as exc:
        raise ProviderError(
            status_code=502,
            code="provider_error",
            message="Provider returned a non-JSON body",
            upstream_status=resp.status_code,
            body=resp.text[:MAX_ERROR_BODY_CHARS],
        ) from exc
    if not isinstance(result, dict):
        raise ProviderError(
            status_code=502,
            code="provider_error",
            message="Provider returned an unexpected JSON payload",
            upstream_status=resp.status_code,
        )
    return result


def raise_for_status(resp: httpx.Response) -> None:
    if resp.is_success:
        return
    body = resp.text[:MAX_ERROR_BODY_CHARS]
    if resp.status_code == 429:
        raise ProviderError(
            status_code=429,
            code="provider_rate_limited",
            message=f"Provider rate limit exceeded: {body}",
            error_type="rate_limit",
            upstream_status=429,
            body=body,
        )
    raise ProviderError(
        status_code=502,
        code="provider_error",
        message=f"Provider returned {resp.status_code}: {body}",
        upstream_status=resp.status_code,
        body=body,
    )
