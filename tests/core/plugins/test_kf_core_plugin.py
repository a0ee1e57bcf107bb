"""Lifespan tests for the core and polling plugins."""

import json

import pytest
from conftest import TEST_AES_KEY, TEST_CALLBACK_TOKEN, RecordingDispatcher
from fastapi.testclient import TestClient

from kfbridge.core.config.settings import Settings
from kfbridge.core.exceptions import ConfigError
from kfbridge.core.factory.kf_builder import KfBridgeBuilder
from kfbridge.core.plugins.kf_core_plugin import KfCorePlugin
from kfbridge.core.plugins.polling_plugin import PollingPlugin
from kfbridge.core.runtime import BridgeRuntime
from kfbridge.domain.dispatchers.logging_dispatcher import LoggingDispatcher


@pytest.fixture
def config(monkeypatch, state_dir) -> Settings:
    monkeypatch.setenv("KF_CORP_ID", "wwcorp123")
    monkeypatch.setenv("KF_APP_SECRET", "app-secret-value")
    monkeypatch.setenv("KF_CALLBACK_TOKEN", TEST_CALLBACK_TOKEN)
    monkeypatch.setenv("KF_ENCODING_AES_KEY", TEST_AES_KEY)
    monkeypatch.setenv("KF_STATE_DIR", str(state_dir))
    # unroutable, so a token fetch fails fast instead of reaching the platform
    monkeypatch.setenv("KF_API_BASE_URL", "http://127.0.0.1:9/cgi-bin")
    monkeypatch.delenv("KF_FORWARD_URL", raising=False)
    return Settings()


class TestKfCorePlugin:
    def test_startup_wires_runtime_and_shutdown_releases_it(self, config, state_dir):
        state_dir.mkdir(parents=True)
        (state_dir / "wechat-kf-kfids.json").write_text(json.dumps(["wkA", "wkB"]))
        dispatcher = RecordingDispatcher()
        app = (
            KfBridgeBuilder()
            .add_plugin(KfCorePlugin(dispatcher=dispatcher, config=config, validate_token=False))
            .build()
        )

        with TestClient(app) as client:
            runtime = app.state.kf_runtime
            assert isinstance(runtime, BridgeRuntime)
            assert runtime.dispatcher is dispatcher
            assert runtime.registry.known_ids() == ["wkA", "wkB"]
            assert not app.state.http_session.closed

            detailed = client.get("/health/detailed").json()
            assert detailed["status"] == "healthy"
            assert [a["account_id"] for a in detailed["sync"]["accounts"]] == ["wkA", "wkB"]
            assert detailed["sync"]["access_token_cached"] is False
            assert "app-secret-value" not in json.dumps(detailed)

            session = app.state.http_session

        assert not hasattr(app.state, "kf_runtime")
        assert not hasattr(app.state, "http_session")
        assert session.closed

    def test_default_dispatcher_logs(self, config):
        app = KfBridgeBuilder().add_plugin(KfCorePlugin(config=config, validate_token=False)).build()

        with TestClient(app):
            assert isinstance(app.state.kf_runtime.dispatcher, LoggingDispatcher)

    def test_token_validation_failure_is_not_fatal(self, config):
        app = KfBridgeBuilder().add_plugin(KfCorePlugin(config=config, validate_token=True)).build()

        with TestClient(app) as client:
            assert client.get("/health").json()["status"] == "healthy"

    def test_missing_credentials_abort_startup(self, config):
        config.app_secret = None
        app = KfBridgeBuilder().add_plugin(KfCorePlugin(config=config, validate_token=False)).build()

        with pytest.raises(ConfigError):
            with TestClient(app):
                pass

    def test_webhook_route_is_mounted(self, config):
        app = KfBridgeBuilder().add_plugin(KfCorePlugin(config=config, validate_token=False)).build()

        with TestClient(app) as client:
            response = client.get(config.webhook_path)

        assert response.status_code == 400
        assert response.text == "missing params"


class TestPollingPlugin:
    def test_poller_runs_between_core_startup_and_shutdown(self, config):
        app = (
            KfBridgeBuilder()
            .add_plugin(KfCorePlugin(config=config, validate_token=False))
            .add_plugin(PollingPlugin(interval=3600))
            .build()
        )

        with TestClient(app) as client:
            poller = app.state.kf_poller
            assert poller.running
            assert client.get("/health/detailed").json()["polling"]["running"] is True

        assert not poller.running
        assert not hasattr(app.state, "kf_poller")

    def test_zero_interval_disables_polling(self, config):
        app = (
            KfBridgeBuilder()
            .add_plugin(KfCorePlugin(config=config, validate_token=False))
            .add_plugin(PollingPlugin(interval=0))
            .build()
        )

        with TestClient(app):
            assert not hasattr(app.state, "kf_poller")

    def test_requires_core_runtime(self):
        app = KfBridgeBuilder().add_plugin(PollingPlugin(interval=5)).build()

        with pytest.raises(RuntimeError, match="KfCorePlugin"):
            with TestClient(app):
                pass
