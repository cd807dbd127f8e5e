import httpx

from convai_bridge.config import ConvaiBridgeConfig
from convai_bridge.health import HealthCheckResult, has_critical_failures, run_startup_checks


def _ok_transport() -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: httpx.Response(200))


def _config(**overrides) -> ConvaiBridgeConfig:
    values = {"agent_id": "agent_1", "api_key": "", "api_key_file": ""}
    values.update(overrides)
    return ConvaiBridgeConfig(**values)


def _by_name(results: list[HealthCheckResult]) -> dict[str, HealthCheckResult]:
    return {result.name: result for result in results}


class TestStartupChecks:
    def test_all_pass_for_public_agent(self):
        results = run_startup_checks(_config(), transport=_ok_transport())
        assert all(result.passed for result in results)
        assert not has_critical_failures(results)
        assert "public agents" in _by_name(results)["api_key"].detail

    def test_missing_agent_id_is_critical(self):
        results = run_startup_checks(_config(agent_id=""), transport=_ok_transport())
        assert not _by_name(results)["agent_id"].passed
        assert has_critical_failures(results)

    def test_missing_key_file_is_not_critical(self, tmp_path):
        config = _config(api_key_file=str(tmp_path / "missing"))
        results = run_startup_checks(config, transport=_ok_transport())
        assert not _by_name(results)["api_key"].passed
        assert not has_critical_failures(results)

    def test_zero_attempts_is_critical(self):
        results = run_startup_checks(_config(open_attempts=0), transport=_ok_transport())
        assert not _by_name(results)["retry_settings"].passed
        assert has_critical_failures(results)

    def test_bad_websocket_scheme(self):
        config = _config(ws_base_url="https://api.elevenlabs.io")
        results = run_startup_checks(config, transport=_ok_transport())
        assert not _by_name(results)["endpoints"].passed
        assert has_critical_failures(results)

    def test_unreachable_api_is_not_critical(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        results = run_startup_checks(_config(), transport=httpx.MockTransport(refuse))
        assert not _by_name(results)["api_reachable"].passed
        assert not has_critical_failures(results)
