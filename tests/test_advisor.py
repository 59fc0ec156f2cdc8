"""Tests for the pipeline advisor."""

import asyncio

import pytest

from pipedeploy.core.services.advisor import (
    AdvisoryText,
    AdvisoryUnavailable,
    build_prompt,
    summarize,
)


class TestSummarize:
    @pytest.mark.asyncio
    async def test_not_configured(self, make_config):
        advisory = await summarize(make_config())

        assert isinstance(advisory, AdvisoryUnavailable)
        assert advisory.reason == "not-configured"

    @pytest.mark.asyncio
    async def test_text(self, make_config):
        prompts = []

        async def generate(prompt):
            prompts.append(prompt)
            return "  - builds the app\n"

        advisory = await summarize(make_config(), generate)

        assert advisory == AdvisoryText(text="- builds the app")
        assert "https://git.example.com/team/app.git" in prompts[0]

    @pytest.mark.asyncio
    async def test_generator_failure_is_not_raised(self, make_config):
        async def generate(prompt):
            raise RuntimeError("quota exceeded")

        advisory = await summarize(make_config(), generate)

        assert advisory.reason == "error"
        assert advisory.message

    @pytest.mark.asyncio
    async def test_timeout(self, make_config):
        async def generate(prompt):
            await asyncio.sleep(1)
            return "late"

        advisory = await summarize(make_config(), generate, timeout=0.01)

        assert advisory.reason == "timeout"

    @pytest.mark.asyncio
    async def test_empty_text(self, make_config):
        async def generate(prompt):
            return "   "

        assert (await summarize(make_config(), generate)).reason == "empty"


class TestPrompt:
    def test_prompt_has_no_secrets(self, make_config):
        config = make_config(
            source={
                "repo_url": "https://git.example.com/team/app.git",
                "credentials": {"name": "git-bot", "username": "bot", "secret": "s3cret"},
            }
        )

        prompt = build_prompt(config)

        assert "s3cret" not in prompt
        assert "Runtime stack: node" in prompt

    def test_custom_prompt(self, custom_config):
        assert "supplied verbatim" in build_prompt(custom_config)
