"""Tests for credential stores and the resolver."""

from xml.etree import ElementTree

import httpx
import pytest
import pytest_asyncio

from pipedeploy.core.models import JobRecord, JobState, NewCredential, parse_pipeline_config
from pipedeploy.core.services.credentials import (
    CredentialInUseError,
    CredentialNotFoundError,
    CredentialStoreError,
    JenkinsCredentialStore,
)
from pipedeploy.core.services.jenkins import JenkinsClient
from pipedeploy.exception import PipelineValidationError


def job_record(name, credentials_id):
    config = parse_pipeline_config(
        {
            "name": name,
            "stack": "python",
            "source": {"repo_url": "https://git.example.com/x.git", "credentials_id": credentials_id},
        }
    )
    return JobRecord(
        name=name,
        build_server_id=name,
        mode="STANDARD",
        stack="python",
        state=JobState.READY,
        config=config,
    )


class TestCredentialResolver:
    """Tests for CredentialResolver over the in-memory store."""

    @pytest.mark.asyncio
    async def test_secret_never_returned(self, resolver):
        credential_id = await resolver.create("git-bot", "bot", "s3cret", "CI user")

        listed = await resolver.list()
        fetched = await resolver.get(credential_id)

        assert [record.id for record in listed] == [credential_id]
        assert fetched.username == "bot"
        for record in (listed[0], fetched):
            assert "secret" not in record.model_dump()
            assert "s3cret" not in record.model_dump_json()

    @pytest.mark.asyncio
    async def test_update_without_secret_keeps_it(self, resolver, credential_store):
        credential_id = await resolver.create("git-bot", "bot", "s3cret")

        updated = await resolver.update(credential_id, username="robot", secret="")

        assert updated.username == "robot"
        assert credential_store.verify(credential_id, "s3cret")

    @pytest.mark.asyncio
    async def test_update_with_secret_replaces_it(self, resolver, credential_store):
        credential_id = await resolver.create("git-bot", "bot", "s3cret")

        await resolver.update(credential_id, secret="n3w")

        assert credential_store.verify(credential_id, "n3w")
        assert not credential_store.verify(credential_id, "s3cret")

    @pytest.mark.asyncio
    async def test_update_unknown(self, resolver):
        with pytest.raises(CredentialNotFoundError):
            await resolver.update("missing", username="x")

    @pytest.mark.asyncio
    async def test_incomplete_credential_rejected(self, resolver):
        with pytest.raises(PipelineValidationError) as exc_info:
            await resolver.create("git-bot", "", "")

        assert "username, secret" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_delete_in_use(self, resolver, records):
        credential_id = await resolver.create("git-bot", "bot", "s3cret")
        await records.put(job_record("app", credential_id))

        with pytest.raises(CredentialInUseError) as exc_info:
            await resolver.delete(credential_id)

        assert exc_info.value.jobs == ["app"]
        assert await resolver.get(credential_id) is not None

    @pytest.mark.asyncio
    async def test_delete(self, resolver, records):
        credential_id = await resolver.create("git-bot", "bot", "s3cret")
        await records.put(job_record("app", "other-credential"))

        await resolver.delete(credential_id)

        assert await resolver.get(credential_id) is None
        with pytest.raises(CredentialNotFoundError):
            await resolver.delete(credential_id)

    @pytest.mark.asyncio
    async def test_ensure_reuses_by_name(self, resolver, credential_store):
        credential = NewCredential(name="git-bot", username="bot", secret="s3cret")
        other = NewCredential(name="git-bot", username="someone", secret="different")

        first = await resolver.ensure(credential)
        second = await resolver.ensure(other)

        assert first == second
        assert len(await resolver.list()) == 1
        assert credential_store.verify(first, "s3cret")


STORED_XML = """<com.cloudbees.plugins.credentials.impl.UsernamePasswordCredentialsImpl>
  <scope>GLOBAL</scope>
  <id>git-bot</id>
  <description>CI user</description>
  <username>bot</username>
  <password>{AQAAABAAAAAQencrypted=}</password>
</com.cloudbees.plugins.credentials.impl.UsernamePasswordCredentialsImpl>"""

BASE = "/credentials/store/system/domain/_"


class FakeCredentialsApi:
    def __init__(self):
        self.posted = []
        self.missing = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if any(path.startswith(f"{BASE}/credential/{name}/") for name in self.missing):
            return httpx.Response(404)
        if request.method == "POST":
            self.posted.append((path, request.content.decode("utf-8")))
            return httpx.Response(200)
        if path == f"{BASE}/api/json":
            return httpx.Response(200, json={"credentials": [{"id": "git-bot"}]})
        if path == f"{BASE}/credential/git-bot/config.xml":
            return httpx.Response(200, text=STORED_XML)
        return httpx.Response(404)


@pytest.fixture
def credentials_api():
    return FakeCredentialsApi()


@pytest_asyncio.fixture
async def jenkins_store(credentials_api):
    client = JenkinsClient("http://jenkins.test", retry_wait=0, transport=httpx.MockTransport(credentials_api))
    yield JenkinsCredentialStore(client)
    await client.aclose()


class TestJenkinsCredentialStore:
    """Tests for JenkinsCredentialStore."""

    @pytest.mark.asyncio
    async def test_create_escapes_values(self, jenkins_store, credentials_api):
        record = await jenkins_store.create("git-bot", "bot", "p&ss<word>", "CI user")

        path, document = credentials_api.posted[0]
        assert path == f"{BASE}/createCredentials"
        root = ElementTree.fromstring(document)
        assert root.findtext("password") == "p&ss<word>"
        assert root.findtext("id") == "git-bot"
        assert record.id == "git-bot"

    @pytest.mark.asyncio
    async def test_get_and_list(self, jenkins_store):
        record = await jenkins_store.get("git-bot")
        listed = await jenkins_store.list()

        assert record.username == "bot"
        assert record.description == "CI user"
        assert [item.id for item in listed] == ["git-bot"]
        assert await jenkins_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_update_without_secret_reposts_stored_password(self, jenkins_store, credentials_api):
        record = await jenkins_store.update("git-bot", username="robot")

        path, document = credentials_api.posted[0]
        root = ElementTree.fromstring(document)
        assert path == f"{BASE}/credential/git-bot/config.xml"
        assert root.findtext("username") == "robot"
        assert root.findtext("password") == "{AQAAABAAAAAQencrypted=}"
        assert record.username == "robot"

    @pytest.mark.asyncio
    async def test_rename_not_supported(self, jenkins_store, credentials_api):
        with pytest.raises(CredentialStoreError):
            await jenkins_store.update("git-bot", name="other")

        assert credentials_api.posted == []

    @pytest.mark.asyncio
    async def test_delete_missing(self, jenkins_store, credentials_api):
        credentials_api.missing.add("git-bot")

        with pytest.raises(CredentialNotFoundError):
            await jenkins_store.delete("git-bot")
