"""Tests for the job record stores and per-job locks."""

import asyncio
import json

import pytest

from pipedeploy.core.models import JobRecord, JobState, Operation, ResourceKind
from pipedeploy.core.services.reconciler import JobLocks, JsonFileJobRecordStore


@pytest.fixture
def record(make_config):
    return JobRecord(
        name="app",
        build_server_id="app",
        mode="STANDARD",
        stack="node",
        state=JobState.PARTIAL_FAILURE,
        pending_operation=Operation.CREATE,
        failed_step=ResourceKind.ENDPOINT,
        config=make_config(),
        document="<flow-definition/>",
    )


class TestJsonFileJobRecordStore:
    """Tests for JsonFileJobRecordStore."""

    @pytest.mark.asyncio
    async def test_survives_reload(self, tmp_path, record):
        path = tmp_path / "state" / "jobs.json"
        await JsonFileJobRecordStore(path).put(record)

        loaded = await JsonFileJobRecordStore(path).get("app")

        assert loaded == record
        assert loaded.failed_step == ResourceKind.ENDPOINT
        assert loaded.config.source.repo_url == "https://git.example.com/team/app.git"

    @pytest.mark.asyncio
    async def test_file_layout(self, tmp_path, record):
        path = tmp_path / "jobs.json"
        store = JsonFileJobRecordStore(path)

        await store.put(record)

        payload = json.loads(path.read_text(encoding="utf-8"))
        assert [job["name"] for job in payload["jobs"]] == ["app"]
        assert payload["jobs"][0]["state"] == "partial-failure"
        assert [p.name for p in tmp_path.iterdir()] == ["jobs.json"]

    @pytest.mark.asyncio
    async def test_delete_and_list(self, tmp_path, record):
        store = JsonFileJobRecordStore(tmp_path / "jobs.json")
        await store.put(record)
        await store.put(record.model_copy(update={"name": "web", "build_server_id": "web"}))

        await store.delete("app")
        await store.delete("missing")

        assert [item.name for item in await store.list()] == ["web"]
        assert await JsonFileJobRecordStore(tmp_path / "jobs.json").get("app") is None

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, tmp_path, record):
        store = JsonFileJobRecordStore(tmp_path / "jobs.json")
        await store.put(record)

        loaded = await store.get("app")
        loaded.state = JobState.READY

        assert (await store.get("app")).state == JobState.PARTIAL_FAILURE

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        store = JsonFileJobRecordStore(tmp_path / "nothing.json")

        assert await store.list() == []
        assert await store.get("app") is None


class TestJobLocks:
    @pytest.mark.asyncio
    async def test_same_name_is_serialized(self):
        locks = JobLocks()
        events = []

        async def worker(tag):
            async with locks.hold("app"):
                events.append(f"{tag}-in")
                await asyncio.sleep(0)
                events.append(f"{tag}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events == ["a-in", "a-out", "b-in", "b-out"]
        assert not locks.locked("app")

    @pytest.mark.asyncio
    async def test_different_names_are_independent(self):
        locks = JobLocks()

        async with locks.hold("app"):
            async with locks.hold("web"):
                assert locks.locked("app")
                assert locks.locked("web")
