import os
from pathlib import Path
from tempfile import gettempdir
from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

"""
Настройки pipedeploy.

Всё читается из переменных окружения PIPEDEPLOY_*. Рабочий каталог
(файл состояния джобов) по умолчанию лежит в системном /tmp/pipedeploy,
его можно переопределить переменной PIPEDEPLOY_WORKDIR.
"""

BASE_TEMP_DIR = Path(
    os.getenv("PIPEDEPLOY_WORKDIR", gettempdir())
) / "pipedeploy"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PIPEDEPLOY_",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Jenkins
    jenkins_url: str = "http://localhost:8080"
    jenkins_user: Optional[str] = None
    jenkins_token: Optional[SecretStr] = None
    jenkins_timeout: float = Field(10.0, gt=0)
    jenkins_retries: int = Field(3, ge=1)
    jenkins_retry_wait: float = Field(0.5, ge=0)
    # хранилище учётных данных Jenkins (system store, глобальный домен)
    jenkins_credentials_store: str = "system"
    jenkins_credentials_domain: str = "_"

    # Docker registry
    registry: str = "registry.local"
    registry_namespace: str = "pipedeploy"
    registry_credentials_id: str = "registry-credentials"

    # Kubernetes
    k8s_namespace: str = "default"
    kubeconfig: Optional[str] = None
    k8s_context: Optional[str] = None
    ingress_domain: Optional[str] = None
    ingress_class: Optional[str] = "nginx"

    # Build Tracker
    poll_interval: float = Field(5.0, gt=0)
    max_polls: int = Field(60, ge=1)
    max_poll_errors: int = Field(3, ge=1)

    state_file: Path = BASE_TEMP_DIR / "jobs.json"
    credentials_backend: str = "jenkins"

    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Только переменные окружения, без явных значений."""
        return cls()
