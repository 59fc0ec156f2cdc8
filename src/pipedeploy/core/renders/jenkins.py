from typing import List, Optional, Tuple
from xml.etree import ElementTree
from xml.sax.saxutils import escape

from pipedeploy.core.config import Settings
from pipedeploy.core.models import CustomConfig, RenderedJob, StandardConfig
from pipedeploy.core.services.builders.pipeline import Clock, build_script, groovy_literal
from pipedeploy.model import BuildScript, Stage

INDENT = "  "

# & экранируется самим escape(), кавычки добавляем явно
_MARKUP_ENTITIES = {'"': "&quot;", "'": "&apos;"}

CONFIG_XML_TEMPLATE = """<?xml version='1.1' encoding='UTF-8'?>
<flow-definition plugin="workflow-job">
  <description>{description}</description>
  <keepDependencies>false</keepDependencies>
  <properties/>
  <definition class="org.jenkinsci.plugins.workflow.cps.CpsFlowDefinition" plugin="workflow-cps">
    <script>{script}</script>
    <sandbox>true</sandbox>
  </definition>
  <triggers/>
  <disabled>false</disabled>
</flow-definition>
"""


def escape_markup(text: str) -> str:
    """Экранирует & < > " ' для вставки текста внутрь XML-документа."""
    return escape(text, _MARKUP_ENTITIES)


def _block(lines: List[str], header: str, body: List[str], depth: int) -> None:
    pad = INDENT * depth
    lines.append(f"{pad}{header} {{")
    for item in body:
        for row in item.splitlines():
            lines.append(f"{pad}{INDENT}{row}")
    lines.append(f"{pad}}}")


def _stage_lines(stage: Stage) -> List[str]:
    steps = list(stage.steps)
    if stage.credentials:
        steps = [
            f"withCredentials([{stage.credentials}]) {{\n"
            + "\n".join(INDENT + row for step in steps for row in step.splitlines())
            + "\n}"
        ]
    if stage.directory:
        steps = [
            f"dir({groovy_literal(stage.directory)}) {{\n"
            + "\n".join(INDENT + row for step in steps for row in step.splitlines())
            + "\n}"
        ]
    lines: List[str] = []
    _block(lines, "steps", steps, 0)
    return lines


def render(script: BuildScript) -> str:
    """
    Рендерит абстрактный BuildScript в декларативный Jenkinsfile.
    """
    lines: List[str] = ["pipeline {", f"{INDENT}agent any"]

    if script.options:
        _block(lines, "options", script.options, 1)
    if script.tools:
        _block(lines, "tools", script.tools, 1)
    if script.environment:
        _block(
            lines,
            "environment",
            [f"{key} = {value}" for key, value in script.environment.items()],
            1,
        )

    lines.append(f"{INDENT}stages {{")
    for stage in script.stages:
        _block(
            lines,
            f"stage({groovy_literal(stage.name)})",
            ["\n".join(_stage_lines(stage))],
            2,
        )
    lines.append(f"{INDENT}}}")
    lines.append("}")
    return "\n".join(lines) + "\n"


def render_config_xml(script_text: str, description: str = "") -> str:
    """
    Оборачивает скрипт в config.xml джоба типа Pipeline.
    Скрипт вставляется дословно, поэтому обязательно экранируется.
    """
    return CONFIG_XML_TEMPLATE.format(
        description=escape_markup(description),
        script=escape_markup(script_text),
    )


def extract_script(document: str) -> Optional[str]:
    """
    Достаёт тело скрипта из config.xml (для предпросмотра CUSTOM-джобов).
    """
    root = ElementTree.fromstring(document)
    node = root.find(".//definition/script")
    if node is None:
        return None
    return node.text or ""


def render_job(
    config: StandardConfig,
    settings: Settings,
    clock: Clock,
) -> Tuple[RenderedJob, List[str], List[str]]:
    script, logs, warnings = build_script(config, settings, clock)
    script_text = render(script)
    description = f"Managed by pipedeploy: {config.name} ({config.stack.value})"
    document = render_config_xml(script_text, description)
    logs.append("Сформирован config.xml джоба.")
    return RenderedJob(script=script_text, document=document), logs, warnings


def document_for(
    config,
    settings: Settings,
    clock: Clock,
) -> Tuple[RenderedJob, List[str], List[str]]:
    """
    Документ джоба для любой конфигурации: STANDARD рендерится,
    CUSTOM передаётся как есть.
    """
    if isinstance(config, CustomConfig):
        return (
            RenderedJob(script=extract_script(config.config_xml), document=config.config_xml),
            ["Используется пользовательский config.xml (режим CUSTOM)."],
            [],
        )
    return render_job(config, settings, clock)
