"""
Tests for config loading and ${ENV} resolution.
"""

import pytest

from searchbox import config


@pytest.fixture(autouse=True)
def _fresh_config():
    config.reset_config()
    yield
    config.reset_config()


def test_env_vars_resolved(tmp_path, monkeypatch):
    monkeypatch.setenv("SB_TEST_KEY", "secret")
    path = tmp_path / "config.yaml"
    path.write_text(
        "backends:\n"
        "  chat_completion:\n"
        "    api_key: ${SB_TEST_KEY}\n"
        "    urls: [\"${SB_TEST_KEY}/a\", plain]\n"
        "  port: 8000\n"
    )
    cfg = config.load_config(path)
    assert cfg["backends"]["chat_completion"]["api_key"] == "secret"
    assert cfg["backends"]["chat_completion"]["urls"] == ["secret/a", "plain"]
    assert cfg["backends"]["port"] == 8000


def test_missing_env_var_resolves_empty(tmp_path, monkeypatch):
    monkeypatch.delenv("SB_TEST_MISSING", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text("identity:\n  api_key: ${SB_TEST_MISSING}\n")
    assert config.load_config(path)["identity"]["api_key"] == ""


def test_config_is_cached(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("server:\n  port: 1\n")
    first = config.load_config(path)
    path.write_text("server:\n  port: 2\n")
    assert config.get_config() is first
    config.reset_config()
    assert config.load_config(path)["server"]["port"] == 2


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        config.load_config(tmp_path / "nope.yaml")


def test_empty_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert config.load_config(path) == {}


def test_shipped_config_loads():
    cfg = config.load_config()
    assert cfg["server"]["port"] == 8000
    assert cfg["usage"]["backend"] in ("memory", "sqlite")
    assert cfg["search"]["max_retries"] == 2


def test_env_fallback_syntax(tmp_path, monkeypatch):
    monkeypatch.delenv("SB_TEST_URL", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text("search:\n  url: ${SB_TEST_URL:-https://fallback.test/snippets}\n")
    assert config.load_config(path)["search"]["url"] == "https://fallback.test/snippets"

    config.reset_config()
    monkeypatch.setenv("SB_TEST_URL", "https://env.test")
    assert config.load_config(path)["search"]["url"] == "https://env.test"


def test_path_override_read_at_load_time(tmp_path, monkeypatch):
    path = tmp_path / "alt.yaml"
    path.write_text("server:\n  port: 9999\n")
    monkeypatch.setenv("SEARCHBOX_CONFIG", str(path))
    assert config.config_path() == path
    assert config.get_config()["server"]["port"] == 9999
