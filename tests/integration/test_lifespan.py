import json

import httpx
import pytest
from fastapi import FastAPI

from static_host.errors import ConfigError
from static_host.main import lifespan


async def test_lifespan_loads_rules_from_env(tmp_path, monkeypatch):
    config = tmp_path / 'routes.json'
    config.write_text(json.dumps({'/api': {'proxy_to': 'http://b'}, '/': {}}))
    monkeypatch.setenv('STATIC_HOST_CONFIG', str(config))
    monkeypatch.setenv('STATIC_HOST_PROXY_TIMEOUT', '3')
    app = FastAPI()

    async with lifespan(app):
        assert [r.prefix for r in app.state.rules] == ['/api', '/']
        assert isinstance(app.state.http_client, httpx.AsyncClient)
        assert app.state.http_client.timeout.read == 3.0

    assert app.state.http_client.is_closed


async def test_lifespan_keeps_preset_rules(tmp_path, monkeypatch):
    from static_host.routing import RuleSet

    monkeypatch.setenv('STATIC_HOST_CONFIG', str(tmp_path / 'ignored.json'))
    app = FastAPI()
    app.state.rules = RuleSet.from_directory(tmp_path)

    async with lifespan(app):
        assert len(app.state.rules) == 1


async def test_lifespan_fails_on_bad_config(tmp_path, monkeypatch):
    config = tmp_path / 'bad.json'
    config.write_text(json.dumps({'/x': {'proxy_to': 'http://b', 'path': '/srv'}}))
    monkeypatch.setenv('STATIC_HOST_CONFIG', str(config))

    with pytest.raises(ConfigError):
        async with lifespan(FastAPI()):
            pass
