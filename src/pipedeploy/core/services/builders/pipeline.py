from datetime import datetime
from typing import Callable, List, Tuple

from pipedeploy.core.ci_scripts import make_install_script, stack_tool
from pipedeploy.core.config import Settings
from pipedeploy.core.logs import get_logger
from pipedeploy.core.models import RuntimeStack, ScriptSummary, StandardConfig
from pipedeploy.model import BuildScript, Stage

logger = get_logger(__name__)

Clock = Callable[[], datetime]

# Формат метки версии образа; это единственное поле скрипта, зависящее от времени
VERSION_TAG_FORMAT = "%Y-%m-%d-%H-%M-%S"


def groovy_literal(value: str) -> str:
    """
    Строка в одинарных кавычках Groovy: без интерполяции,
    экранируем только обратный слэш и саму кавычку.
    """
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def image_repository(image_name: str, settings: Settings) -> str:
    return f"{settings.registry}/{settings.registry_namespace}/{image_name}"


def _checkout_step(with_credentials: bool) -> str:
    remote = "url: env.GIT_REPO_URL"
    if with_credentials:
        remote += ", credentialsId: env.CREDENTIALS_ID"
    return (
        "checkout([$class: 'GitSCM',\n"
        "    branches: [[name: env.GIT_BUILD_REF]],\n"
        f"    userRemoteConfigs: [[{remote}]]])"
    )


def _sh(command: str) -> str:
    return f"sh {groovy_literal(command)}"


def build_script(
    config: StandardConfig,
    settings: Settings,
    clock: Clock,
) -> Tuple[BuildScript, List[str], List[str]]:
    """
    Строим абстрактный скрипт сборки по структурированной конфигурации.

    Возвращает (BuildScript, logs, warnings). Функция чистая: при одинаковых
    config/settings и одинаковом значении clock() результат совпадает побайтно.
    """
    if not isinstance(config, StandardConfig):
        raise ValueError("Only STANDARD configurations are rendered; CUSTOM ones carry their own document")

    logs: List[str] = []
    warnings: List[str] = []
    logs.append(f"Строим скрипт сборки для стека {config.stack.value}")

    version_stamp = clock().strftime(VERSION_TAG_FORMAT)
    credentials_id = config.source.credentials_id
    repository = image_repository(config.image_name, settings)

    environment = {
        "GIT_REPO_URL": groovy_literal(config.source.repo_url),
        "GIT_BUILD_REF": groovy_literal(config.source.branch),
    }
    if credentials_id:
        environment["CREDENTIALS_ID"] = groovy_literal(credentials_id)
    else:
        warnings.append(
            "Не указаны учётные данные git: репозиторий будет клонироваться анонимно."
        )
    if config.stack == RuntimeStack.NODE and config.node_options:
        environment["NODE_OPTIONS"] = groovy_literal(config.node_options)
    environment.update(
        {
            "REGISTRY": groovy_literal(settings.registry),
            "REGISTRY_CREDENTIALS_ID": groovy_literal(settings.registry_credentials_id),
            "DOCKER_IMAGE": groovy_literal(repository),
            "DOCKER_IMAGE_VERSION": f'"{version_stamp}-${{env.BUILD_NUMBER}}"',
            "DOCKERFILE_PATH": groovy_literal(config.image.dockerfile_path),
            "DOCKER_BUILD_CONTEXT": groovy_literal(config.image.build_context),
            "K8S_NAMESPACE": groovy_literal(settings.k8s_namespace),
            "K8S_DEPLOYMENT": groovy_literal(config.name),
            "K8S_CONTAINER": groovy_literal(config.name),
        }
    )

    install_steps = [_sh(cmd) for cmd in make_install_script(config.stack)]
    if config.image.build_directory:
        logs.append(f"Зависимости ставятся в подкаталоге {config.image.build_directory}")

    stages = [
        Stage(
            name="Checkout",
            steps=["deleteDir()", _checkout_step(bool(credentials_id))],
        ),
        Stage(
            name="Install",
            steps=install_steps,
            directory=config.image.build_directory or None,
        ),
        Stage(
            name="Image Build",
            steps=[
                _sh(
                    'docker build -t "$DOCKER_IMAGE:$DOCKER_IMAGE_VERSION" '
                    '-f "$DOCKERFILE_PATH" "$DOCKER_BUILD_CONTEXT"'
                ),
                _sh('docker tag "$DOCKER_IMAGE:$DOCKER_IMAGE_VERSION" "$DOCKER_IMAGE:latest"'),
            ],
        ),
        Stage(
            name="Image Push",
            credentials=(
                "usernamePassword(credentialsId: env.REGISTRY_CREDENTIALS_ID, "
                "usernameVariable: 'REGISTRY_USER', passwordVariable: 'REGISTRY_PASSWORD')"
            ),
            steps=[
                _sh(
                    'echo "$REGISTRY_PASSWORD" | docker login --username "$REGISTRY_USER" '
                    '--password-stdin "$REGISTRY"'
                ),
                _sh('docker push "$DOCKER_IMAGE:$DOCKER_IMAGE_VERSION"'),
                _sh('docker push "$DOCKER_IMAGE:latest"'),
            ],
        ),
        Stage(
            name="Cleanup",
            steps=[
                _sh('docker rmi -f "$DOCKER_IMAGE:$DOCKER_IMAGE_VERSION" "$DOCKER_IMAGE:latest" || true'),
            ],
        ),
        Stage(
            name="Rollout",
            steps=[
                _sh(
                    'kubectl set image "deployment/$K8S_DEPLOYMENT" '
                    '"$K8S_CONTAINER=$DOCKER_IMAGE:$DOCKER_IMAGE_VERSION" -n "$K8S_NAMESPACE"'
                ),
                _sh('kubectl rollout status "deployment/$K8S_DEPLOYMENT" -n "$K8S_NAMESPACE" --timeout=300s'),
            ],
        ),
    ]

    tool = stack_tool(config.stack)
    script = BuildScript(
        tools=[tool] if tool else [],
        options=["disableConcurrentBuilds()"],
        environment=environment,
        stages=stages,
    )
    logs.append(f"Скрипт сформирован: {len(script.stages)} стадий, образ {repository}.")
    logger.debug("build_script_ready", job=config.name, stack=config.stack.value, stages=len(stages))

    return script, logs, warnings


def summarize_script(script: BuildScript) -> ScriptSummary:
    """
    Краткое резюме скрипта для ответа API/CLI.
    """
    stages = [stage.name for stage in script.stages]
    if not stages:
        description = "Скрипт пустой. Отредактируйте конфигурацию."
    else:
        description = f"Скрипт из {len(stages)} стадий: {', '.join(stages)}."

    return ScriptSummary(
        stages_count=len(stages),
        stages=stages,
        description=description,
    )
