import logging
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx

from convai_bridge.config import ConvaiBridgeConfig

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


def run_startup_checks(
    config: ConvaiBridgeConfig,
    transport: httpx.BaseTransport | None = None,
) -> list[HealthCheckResult]:
    results = [
        _check_agent_id(config),
        _check_api_key(config),
        _check_retry_settings(config),
        _check_endpoints(config),
        _check_api_reachable(config, transport),
    ]

    passed = sum(1 for r in results if r.passed)

    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    critical_checks = {"agent_id", "retry_settings", "endpoints"}
    return any(not r.passed and r.name in critical_checks for r in results)


def _check_agent_id(config: ConvaiBridgeConfig) -> HealthCheckResult:
    name = "agent_id"
    if not config.agent_id.strip():
        return HealthCheckResult(name=name, passed=False, detail="ELEVENLABS_AGENT_ID is not set")
    return HealthCheckResult(name=name, passed=True, detail=f"Agent {config.agent_id}")


def _check_api_key(config: ConvaiBridgeConfig) -> HealthCheckResult:
    name = "api_key"
    if config.resolve_api_key():
        return HealthCheckResult(name=name, passed=True, detail="API key loaded, using signed URLs")
    if config.api_key_file:
        return HealthCheckResult(
            name=name, passed=False, detail=f"Key file {config.api_key_file} missing or empty"
        )
    return HealthCheckResult(name=name, passed=True, detail="No API key, public agents only")


def _check_retry_settings(config: ConvaiBridgeConfig) -> HealthCheckResult:
    name = "retry_settings"
    if config.open_attempts < 1:
        return HealthCheckResult(
            name=name, passed=False, detail=f"open_attempts must be >= 1, got {config.open_attempts}"
        )
    if config.retry_backoff_seconds < 0:
        return HealthCheckResult(
            name=name,
            passed=False,
            detail=f"retry_backoff_seconds must be >= 0, got {config.retry_backoff_seconds}",
        )
    return HealthCheckResult(
        name=name,
        passed=True,
        detail=f"{config.open_attempts} attempts, {config.retry_backoff_seconds}s linear backoff",
    )


def _check_endpoints(config: ConvaiBridgeConfig) -> HealthCheckResult:
    name = "endpoints"
    problems = []
    if urlparse(config.api_base_url).scheme not in ("http", "https"):
        problems.append(f"api_base_url '{config.api_base_url}' is not http(s)")
    if urlparse(config.ws_base_url).scheme not in ("ws", "wss"):
        problems.append(f"ws_base_url '{config.ws_base_url}' is not ws(s)")
    if problems:
        return HealthCheckResult(name=name, passed=False, detail="; ".join(problems))
    return HealthCheckResult(name=name, passed=True, detail=config.ws_base_url)


def _check_api_reachable(
    config: ConvaiBridgeConfig, transport: httpx.BaseTransport | None
) -> HealthCheckResult:
    name = "api_reachable"
    try:
        with httpx.Client(timeout=3.0, transport=transport) as client:
            response = client.get(config.api_base_url)
        return HealthCheckResult(name=name, passed=True, detail=f"Reachable ({response.status_code})")
    except httpx.HTTPError as exc:
        return HealthCheckResult(name=name, passed=False, detail=f"Unreachable: {exc}")
