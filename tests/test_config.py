"""Tests for environment-driven settings."""

from pathlib import Path

import pytest
from click.testing import CliRunner
from pydantic import ValidationError

from pipedeploy.cli import cli
from pipedeploy.core.config import Settings


class TestSettingsFromEnv:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PIPEDEPLOY_JENKINS_URL", raising=False)
        monkeypatch.delenv("PIPEDEPLOY_MAX_POLLS", raising=False)

        settings = Settings.from_env()

        assert settings.jenkins_url == "http://localhost:8080"
        assert settings.max_polls == 60

    def test_prefixed_variables_are_parsed(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PIPEDEPLOY_JENKINS_URL", "http://ci.example")
        monkeypatch.setenv("PIPEDEPLOY_JENKINS_TOKEN", "t0ken")
        monkeypatch.setenv("PIPEDEPLOY_JENKINS_TIMEOUT", "2.5")
        monkeypatch.setenv("PIPEDEPLOY_MAX_POLLS", "10")
        monkeypatch.setenv("PIPEDEPLOY_LOG_JSON", "true")
        monkeypatch.setenv("PIPEDEPLOY_STATE_FILE", str(tmp_path / "state.json"))

        settings = Settings.from_env()

        assert settings.jenkins_url == "http://ci.example"
        assert settings.jenkins_token.get_secret_value() == "t0ken"
        assert "t0ken" not in repr(settings)
        assert settings.jenkins_timeout == 2.5
        assert settings.max_polls == 10
        assert settings.log_json is True
        assert settings.state_file == Path(tmp_path / "state.json")

    def test_empty_variable_keeps_default(self, monkeypatch):
        monkeypatch.setenv("PIPEDEPLOY_K8S_NAMESPACE", "")

        assert Settings.from_env().k8s_namespace == "default"

    @pytest.mark.parametrize(
        "variable,value",
        [("PIPEDEPLOY_JENKINS_TIMEOUT", "abc"), ("PIPEDEPLOY_MAX_POLLS", "0")],
    )
    def test_invalid_values_rejected(self, monkeypatch, variable, value):
        monkeypatch.setenv(variable, value)

        with pytest.raises(ValidationError):
            Settings.from_env()


class TestCliSettings:
    def test_invalid_environment_is_reported(self):
        result = CliRunner().invoke(
            cli,
            ["validate-name", "app"],
            obj={},
            env={"PIPEDEPLOY_JENKINS_TIMEOUT": "abc"},
        )

        assert result.exit_code == 1
        assert "PIPEDEPLOY_* settings are invalid" in result.output
