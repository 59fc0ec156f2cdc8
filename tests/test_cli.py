"""Tests for the click command line interface."""

import json

import pytest
from click.testing import CliRunner

from pipedeploy.cli import cli
from pipedeploy.core.core import PipeDeployCore
from pipedeploy.core.models import BuildRecord, BuildStatus, ResourceKind
from pipedeploy.core.services.k8s import OrchestratorError


@pytest.fixture
def core(settings, build_server, orchestrator, records, credential_store, clock):
    return PipeDeployCore(
        settings=settings,
        build_server=build_server,
        orchestrator=orchestrator,
        records=records,
        credential_store=credential_store,
        clock=clock,
    )


@pytest.fixture
def invoke(settings, core):
    runner = CliRunner()

    def _invoke(*args, **kwargs):
        return runner.invoke(
            cli,
            list(args),
            obj={"settings": settings, "core_factory": lambda _settings: core},
            **kwargs,
        )

    return _invoke


@pytest.fixture
def config_file(tmp_path):
    def _write(**overrides):
        data = {
            "name": "app",
            "stack": "node",
            "source": {"repo_url": "https://git.example.com/team/app.git", "branch": "main"},
        }
        data.update(overrides)
        path = tmp_path / f"{data['name']}.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)

    return _write


class TestValidateName:
    def test_valid(self, invoke):
        result = invoke("validate-name", "my-app")

        assert result.exit_code == 0
        assert "my-app: ok" in result.output

    def test_invalid(self, invoke):
        result = invoke("validate-name", "My-App")

        assert result.exit_code == 1
        assert "uppercase-present" in result.output


class TestPreview:
    def test_document(self, invoke, config_file, journal):
        result = invoke("preview", config_file())

        assert result.exit_code == 0, result.output
        assert "<flow-definition" in result.output
        assert journal == []

    def test_script_only(self, invoke, config_file):
        result = invoke("preview", "--script", config_file())

        assert result.exit_code == 0, result.output
        assert "pipeline {" in result.output
        assert "<flow-definition" not in result.output

    def test_output_file(self, invoke, config_file, tmp_path):
        target = tmp_path / "config.xml"

        result = invoke("preview", config_file(), "-o", str(target))

        assert result.exit_code == 0, result.output
        assert target.read_text(encoding="utf-8").startswith("<?xml")

    def test_invalid_json(self, invoke, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        result = invoke("preview", str(path))

        assert result.exit_code == 1
        assert "not valid JSON" in result.output

    def test_incomplete_config(self, invoke, config_file):
        result = invoke("preview", config_file(source={"repo_url": ""}))

        assert result.exit_code == 1
        assert "source.repo_url" in result.output


class TestJobCommands:
    """create / status / jobs / delete through the CLI."""

    def test_create_and_status(self, invoke, config_file):
        created = invoke("create", config_file())
        status = invoke("status", "app")
        listed = invoke("jobs")

        assert created.exit_code == 0, created.output
        assert "app: ready" in created.output
        assert "app: ready (STANDARD, node)" in status.output
        assert "workload app:" in status.output
        assert "app\tready\tunknown" in listed.output

    def test_invalid_name(self, invoke, config_file, journal):
        result = invoke("create", config_file(name="My_App"))

        assert result.exit_code == 1
        assert "Invalid job name" in result.output
        assert journal == []

    def test_partial_failure_reported(self, invoke, config_file, orchestrator):
        orchestrator.failures[("apply", ResourceKind.ENDPOINT)] = OrchestratorError(
            "endpoint", "create", "forbidden", status_code=403
        )

        result = invoke("create", config_file())
        status = invoke("status", "app")

        assert result.exit_code == 1
        assert "Retry the same operation" in result.output
        assert "kubernetes endpoint create failed" in result.output
        assert "failed step: endpoint (create)" in status.output

    def test_delete(self, invoke, config_file, build_server):
        invoke("create", config_file())

        result = invoke("delete", "app", "--yes")

        assert result.exit_code == 0, result.output
        assert "app: deleted" in result.output
        assert build_server.jobs == {}

    def test_delete_unknown(self, invoke):
        result = invoke("delete", "ghost", "--yes")

        assert result.exit_code == 1
        assert "not managed by pipedeploy" in result.output


class TestBuildCommands:
    def test_build_no_wait(self, invoke, config_file):
        invoke("create", config_file())

        first = invoke("build", "app")
        second = invoke("build", "app")

        assert first.exit_code == 0, first.output
        assert "app: build queued" in first.output
        assert second.exit_code == 1
        assert "was not started: build is already queued" in second.output

    def test_build_again_after_untracked_build_finished(self, invoke, config_file, build_server):
        invoke("create", config_file())
        invoke("build", "app")
        build_server.builds["app"] = [BuildRecord(job_id="app", number=1, status=BuildStatus.SUCCESS)]

        result = invoke("build", "app")

        assert result.exit_code == 0, result.output
        assert "app: build queued" in result.output

    def test_build_wait(self, invoke, config_file, build_server):
        invoke("create", config_file())
        build_server.latest_sequence = [
            BuildRecord(job_id="app", number=1, status=BuildStatus.IN_PROGRESS),
            BuildRecord(job_id="app", number=1, status=BuildStatus.SUCCESS),
        ]

        result = invoke("build", "app", "--wait")
        listed = invoke("jobs")

        assert result.exit_code == 0, result.output
        assert "app #1: success (completed)" in result.output
        assert "app\tready\tsuccess" in listed.output

    def test_builds_and_log(self, invoke, config_file, build_server):
        invoke("create", config_file())
        build_server.builds["app"] = [
            BuildRecord(job_id="app", number=2, status=BuildStatus.FAILURE),
            BuildRecord(job_id="app", number=1, status=BuildStatus.SUCCESS),
        ]

        history = invoke("builds", "app")
        log = invoke("log", "app", "2")

        assert history.output.index("#2\tfailure") < history.output.index("#1\tsuccess")
        assert "Started build #2 of app" in log.output


class TestCredentialCommands:
    def test_create_and_list(self, invoke):
        created = invoke(
            "credentials", "create", "--name", "git-bot", "--username", "bot", "--secret", "s3cret"
        )
        listed = invoke("credentials", "list")

        assert created.exit_code == 0, created.output
        assert "git-bot\tbot" in listed.output
        assert "s3cret" not in listed.output

    def test_secret_prompt(self, invoke, credential_store):
        result = invoke(
            "credentials", "create", "--name", "git-bot", "--username", "bot",
            input="s3cret\ns3cret\n",
        )

        assert result.exit_code == 0, result.output
        credential_id = result.output.strip().splitlines()[-1]
        assert credential_store.verify(credential_id, "s3cret")


class TestAdvise:
    def test_not_configured(self, invoke, config_file):
        result = invoke("advise", config_file())

        assert result.exit_code == 0
        assert "AI analysis is not available" in result.output
