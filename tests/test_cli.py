import pytest

from lmshim import cli as cli_mod


def test_exits_when_api_key_missing(monkeypatch):
    calls = []
    monkeypatch.setattr(cli_mod.settings, "api_key", None)
    monkeypatch.setattr(cli_mod.uvicorn, "run", lambda *a, **kw: calls.append(kw))
    with pytest.raises(SystemExit) as exc:
        cli_mod.main([])
    assert exc.value.code == 1
    assert calls == []


def test_runs_on_configured_loopback_address(monkeypatch):
    calls = []
    monkeypatch.setattr(cli_mod.settings, "api_key", "sk-or-test")
    monkeypatch.setattr(cli_mod.uvicorn, "run", lambda app, **kw: calls.append((app, kw)))
    cli_mod.main([])
    app, kw = calls[0]
    assert kw["host"] == cli_mod.settings.host
    assert kw["port"] == cli_mod.settings.port
    assert app.state.settings is cli_mod.settings


def test_host_and_port_flags_override(monkeypatch):
    calls = []
    monkeypatch.setattr(cli_mod.settings, "api_key", "sk-or-test")
    monkeypatch.setattr(cli_mod.uvicorn, "run", lambda app, **kw: calls.append(kw))
    cli_mod.main(["--host", "0.0.0.0", "--port", "8088"])
    assert calls[0]["host"] == "0.0.0.0"
    assert calls[0]["port"] == 8088


def test_unknown_log_level_falls_back_to_info(monkeypatch):
    calls = []
    monkeypatch.setattr(cli_mod.settings, "api_key", "sk-or-test")
    monkeypatch.setattr(cli_mod.settings, "log_level", "foo")
    monkeypatch.setattr(cli_mod.settings, "debug", False)
    monkeypatch.setattr(cli_mod.uvicorn, "run", lambda app, **kw: calls.append(kw))
    cli_mod.main([])
    assert calls[0]["log_level"] == "info"
