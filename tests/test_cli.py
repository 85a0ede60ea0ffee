"""
Tests for the CLI parser and command output.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from searchbox import cli, config


@pytest.mark.parametrize("argv,func", [
    (["serve"], cli.cmd_serve),
    (["up", "--port", "9000"], cli.cmd_serve),
    (["talk", "--mode", "web"], cli.cmd_chat),
    (["status"], cli.cmd_ping),
    (["usage", "--user", "a@b.c"], cli.cmd_dashboard),
    (["list"], cli.cmd_models),
    (["tone"], cli.cmd_banner),
])
def test_aliases_resolve(argv, func):
    args = cli.build_parser().parse_args(argv)
    assert args.func is func


def test_dashboard_needs_user_or_token(capsys):
    cli.cmd_dashboard(cli.build_parser().parse_args(["dashboard"]))
    assert "Pass --user" in capsys.readouterr().out


def test_models_lists_catalog(capsys):
    cli.cmd_models(cli.build_parser().parse_args(["models"]))
    out = capsys.readouterr().out
    assert "* mistral" in out
    assert "llama-3.3-70b-versatile" in out
    assert "chat_completion" in out


def test_dashboard_json(capsys, monkeypatch):
    monkeypatch.setattr(config, "_config", {"usage": {"backend": "memory"}})
    cli.cmd_dashboard(cli.build_parser().parse_args(["dashboard", "--user", "a@b.c", "--json"]))
    out = capsys.readouterr().out
    assert '"totalRequests": 0' in out
    assert '"uid": "a@b.c"' in out


def test_dashboard_from_server(capsys, monkeypatch):
    monkeypatch.setattr(config, "_config", {"server": {"port": 8123}})
    snapshot = {"user": {"uid": "uid-1"}, "usage": {"totalRequests": 4}, "modelUsage": []}
    fetch = AsyncMock(return_value=snapshot)

    with patch("searchbox.client.ApiClient.dashboard", fetch):
        cli.cmd_dashboard(cli.build_parser().parse_args(["usage", "--token", "tok", "--json"]))

    fetch.assert_awaited_once_with("tok", force_refresh=True)
    assert '"totalRequests": 4' in capsys.readouterr().out


def test_dashboard_server_rejects_token(capsys, monkeypatch):
    monkeypatch.setattr(config, "_config", {})
    request = httpx.Request("GET", "http://localhost:8000/dashboard")
    error = httpx.HTTPStatusError("401", request=request, response=httpx.Response(401, request=request))

    with patch("searchbox.client.ApiClient.dashboard", AsyncMock(side_effect=error)):
        cli.cmd_dashboard(cli.build_parser().parse_args(["dashboard", "--token", "bad"]))

    assert "HTTP 401" in capsys.readouterr().out
