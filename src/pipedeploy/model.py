from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class Stage(BaseModel):
    """
    Абстрактная стадия сборочного скрипта.
    На этом уровне ничего не знает о синтаксисе Jenkinsfile.

    steps    : готовые шаги (sh/checkout/...), по одному на строку
    directory: если задан, шаги выполняются внутри dir('<directory>')
    """

    name: str
    steps: List[str]
    directory: Optional[str] = None
    credentials: Optional[str] = None  # обёртка withCredentials(...)


class BuildScript(BaseModel):
    """
    Абстрактный скрипт сборки: инструменты, окружение и порядок стадий.
    """

    tools: List[str] = Field(default_factory=list)
    options: List[str] = Field(default_factory=list)
    environment: Dict[str, str] = Field(default_factory=dict)
    stages: List[Stage]
