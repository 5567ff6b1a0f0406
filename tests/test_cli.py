import json
import os
import signal
import threading

import httpx
import pytest
import typer
from typer.testing import CliRunner

from vault_init.cli.main import _parse_interval, _resolve_optional_bool_flag, app

runner = CliRunner()

ADDRESS = "http://vault.local:8200"


def _combined_output(result) -> str:
    return f"{result.stdout}{getattr(result, 'stderr', '')}"


class FakeHandoff:
    def __init__(self):
        self.tokens = []

    def handoff(self, root_token):
        self.tokens.append(root_token)
        return "https://encrypted-tokens.s3.eu-west-1.amazonaws.com/vault-0_token"


@pytest.fixture
def vault_server(monkeypatch, tmp_path):
    """
    Route the CLI's HTTP client to an in-process Vault stand-in.
    Set `health_status` and `init_response` to shape its answers.
    """
    monkeypatch.chdir(tmp_path)
    server = {"health_status": 200, "init_response": httpx.Response(200, json={"root_token": "abc123"}), "seen": []}

    def handler(request: httpx.Request) -> httpx.Response:
        server["seen"].append((request.method, request.url.path))
        if request.url.path == "/v1/sys/health":
            if isinstance(server["health_status"], Exception):
                raise server["health_status"]
            return httpx.Response(server["health_status"])
        return server["init_response"]

    monkeypatch.setattr(
        "vault_init.core.context.build_http_client",
        lambda timeout: httpx.Client(transport=httpx.MockTransport(handler)),
    )
    return server


@pytest.fixture
def fake_handoff(monkeypatch):
    handoff = FakeHandoff()
    monkeypatch.setattr(
        "vault_init.runtime.orchestrator.build_credential_handoff",
        lambda context, log=None: handoff,
    )
    return handoff


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    assert "run" in result.stdout
    assert "status" in result.stdout


def test_resolve_optional_bool_flag_conflict():
    with pytest.raises(typer.BadParameter, match="Cannot use --dormant and --no-dormant together"):
        _resolve_optional_bool_flag(True, True, "dormant")


@pytest.mark.parametrize(
    "enabled, disabled, expected",
    [(True, False, True), (False, True, False), (False, False, None)],
)
def test_resolve_optional_bool_flag(enabled, disabled, expected):
    assert _resolve_optional_bool_flag(enabled, disabled, "dormant") is expected


@pytest.mark.parametrize("value", ["ten", "1.5", "-3"])
def test_parse_interval_rejects_bad_values(value):
    with pytest.raises(typer.BadParameter):
        _parse_interval(value)


def test_run_rejects_bad_interval(vault_server):
    result = runner.invoke(app, ["run", "--interval", "ten", "--no-dormant"])

    assert result.exit_code != 0
    assert "whole number of seconds" in _combined_output(result)
    assert vault_server["seen"] == []


def test_run_rejects_conflicting_dormant_flags(vault_server):
    result = runner.invoke(app, ["run", "--dormant", "--no-dormant"])

    assert result.exit_code != 0
    assert "Cannot use --dormant and --no-dormant together" in _combined_output(result)


def test_run_rejects_missing_explicit_config(vault_server, tmp_path):
    result = runner.invoke(app, ["run", "--config", str(tmp_path / "missing.yaml"), "--no-dormant"])

    assert result.exit_code == 1
    assert "Config file not found" in _combined_output(result)


def test_run_leaves_ready_vault_alone(vault_server, fake_handoff):
    result = runner.invoke(app, ["run", "--address", ADDRESS, "--no-dormant"])

    assert result.exit_code == 0
    output = _combined_output(result)
    assert "Vault is initialised and unsealed. Going dormant..." in output
    assert "Exiting without going dormant" in output
    assert vault_server["seen"] == [("HEAD", "/v1/sys/health")]
    assert fake_handoff.tokens == []


def test_run_initialises_uninitialised_vault(vault_server, fake_handoff, aws_env):
    vault_server["health_status"] = 501

    result = runner.invoke(app, ["run", "-a", ADDRESS, "--no-dormant"])

    assert result.exit_code == 0
    assert vault_server["seen"] == [("HEAD", "/v1/sys/health"), ("PUT", "/v1/sys/init")]
    assert fake_handoff.tokens == ["abc123"]
    output = _combined_output(result)
    assert "Initialisation complete" in output
    assert "abc123" not in output


def test_run_exits_non_zero_when_init_fails(vault_server, fake_handoff, aws_env):
    vault_server["health_status"] = 501
    vault_server["init_response"] = httpx.Response(500, text="internal error")

    result = runner.invoke(app, ["run", "--address", ADDRESS, "--no-dormant"])

    assert result.exit_code == 1
    assert "non 200 status code: 500" in _combined_output(result)
    assert fake_handoff.tokens == []


def test_run_exits_non_zero_without_aws_settings(vault_server):
    vault_server["health_status"] = 501

    result = runner.invoke(app, ["run", "--address", ADDRESS, "--no-dormant"])

    assert result.exit_code == 1
    assert "missing AWS settings" in _combined_output(result)
    assert ("PUT", "/v1/sys/init") not in vault_server["seen"]


def test_run_reports_invalid_address(vault_server):
    result = runner.invoke(app, ["run", "--address", "vault.local:8200", "--no-dormant"])

    assert result.exit_code == 1
    assert "http://" in _combined_output(result)


@pytest.mark.parametrize(
    "address, expected",
    [
        ("http://[::1:8200", "not a valid URL"),
        ("http://", "has no host"),
    ],
)
def test_run_rejects_malformed_address_before_probing(vault_server, address, expected):
    result = runner.invoke(app, ["run", "--address", address, "--no-dormant"])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert expected in _combined_output(result)
    assert vault_server["seen"] == []


def test_status_rejects_malformed_address(vault_server):
    result = runner.invoke(app, ["status", "--address", "http://[::1:8200"])

    assert result.exit_code == 1
    assert "not a valid URL" in _combined_output(result)
    assert vault_server["seen"] == []


def test_run_reads_config_file(vault_server, tmp_path):
    config_file = tmp_path / "vault-init.yaml"
    config_file.write_text("vault:\n  vault_addr: http://from-file:8200\n")

    result = runner.invoke(app, ["run", "--no-dormant"])

    assert result.exit_code == 0
    assert "http://from-file:8200" in _combined_output(result)


def test_run_goes_dormant_until_sigterm(vault_server):
    timer = threading.Timer(0.3, lambda: os.kill(os.getpid(), signal.SIGTERM))
    timer.start()
    try:
        result = runner.invoke(app, ["run", "--address", ADDRESS])
    finally:
        timer.cancel()

    assert result.exit_code == 0
    output = _combined_output(result)
    assert "Dormant. Waiting for a termination signal." in output
    assert "Shutting down... (SIGTERM)" in output
    assert "Shutdown complete." in output


def test_run_shutdown_while_vault_unreachable(vault_server):
    vault_server["health_status"] = httpx.ConnectError("connection refused")
    timer = threading.Timer(0.3, lambda: os.kill(os.getpid(), signal.SIGTERM))
    timer.start()
    try:
        result = runner.invoke(app, ["run", "--address", ADDRESS, "--interval", "30"])
    finally:
        timer.cancel()

    assert result.exit_code == 0
    output = _combined_output(result)
    assert "Vault is not reachable" in output
    assert "Shutdown complete." in output
    assert ("PUT", "/v1/sys/init") not in vault_server["seen"]


def test_status_prints_state(vault_server):
    vault_server["health_status"] = 503

    result = runner.invoke(app, ["status", "--address", ADDRESS])

    assert result.exit_code == 0
    assert "sealed (HTTP 503)" in result.stdout


def test_status_json(vault_server):
    vault_server["health_status"] = 501

    result = runner.invoke(app, ["status", "--address", ADDRESS, "--json"])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == {
        "address": ADDRESS,
        "state": "uninitialized",
        "status_code": 501,
        "action": "initialize",
        "reason": None,
    }


def test_status_unreachable_exits_non_zero(vault_server):
    vault_server["health_status"] = httpx.ConnectError("connection refused")

    result = runner.invoke(app, ["status", "--address", ADDRESS])

    assert result.exit_code == 1
    assert "is not reachable" in _combined_output(result)
