import asyncio
from typing import Awaitable, Callable, Optional, Union

from pydantic import BaseModel

from pipedeploy.core.logs import get_logger
from pipedeploy.core.models import CustomConfig

logger = get_logger(__name__)

Generate = Callable[[str], Awaitable[str]]

NOT_CONFIGURED_MESSAGE = (
    "AI analysis is not available: no text generation service is configured."
)
PLACEHOLDER_MESSAGE = "Could not generate a pipeline summary at this time."


class AdvisoryText(BaseModel):
    text: str


class AdvisoryUnavailable(BaseModel):
    reason: str
    message: str = PLACEHOLDER_MESSAGE


Advisory = Union[AdvisoryText, AdvisoryUnavailable]


def build_prompt(config) -> str:
    """
    Текст запроса к генератору. Секретов здесь нет: в конфигурации
    остаются только ссылки на учётные данные.
    """
    lines = [
        "Analyze this CI/CD pipeline configuration and provide a professional summary of what it does.",
        "Parameters:",
        f"- Job: {config.name}",
        f"- Runtime stack: {config.stack.value}",
        f"- Mode: {config.mode}",
    ]
    if isinstance(config, CustomConfig):
        lines.append("- Job definition: supplied verbatim by the user")
    else:
        lines.extend(
            [
                f"- Git Repo: {config.source.repo_url}",
                f"- Branch: {config.source.branch}",
                f"- Image Name: {config.image_name}",
                f"- Dockerfile: {config.image.dockerfile_path}",
                f"- Build Directory: {config.image.build_directory or '.'}",
            ]
        )
    lines.append("")
    lines.append("Generate a concise technical explanation in 3-4 bullet points.")
    return "\n".join(lines)


async def summarize(
    config,
    generate: Optional[Generate] = None,
    timeout: float = 15.0,
) -> Advisory:
    """
    Краткое описание пайплайна от внешнего генератора текста.
    Никогда не бросает исключений: любой сбой превращается в AdvisoryUnavailable.
    """
    if generate is None:
        return AdvisoryUnavailable(reason="not-configured", message=NOT_CONFIGURED_MESSAGE)

    try:
        text = await asyncio.wait_for(generate(build_prompt(config)), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("advisory_timeout", job=config.name, timeout=timeout)
        return AdvisoryUnavailable(reason="timeout")
    except Exception as e:
        logger.warning("advisory_failed", job=config.name, error=repr(e))
        return AdvisoryUnavailable(reason="error")

    if not text or not text.strip():
        return AdvisoryUnavailable(reason="empty")
    return AdvisoryText(text=text.strip())
