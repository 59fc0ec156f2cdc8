# core/ci_scripts.py
from __future__ import annotations

from typing import List, Optional

from .models import RuntimeStack


# Инструменты Jenkins (Global Tool Configuration), которые подключаются в tools { }
STACK_TOOLS = {
    RuntimeStack.NODE: "nodejs 'NodeJS-22'",
    RuntimeStack.JAVA: "maven 'Maven-3.9'",
    RuntimeStack.PYTHON: None,
}


def stack_tool(stack: RuntimeStack) -> Optional[str]:
    return STACK_TOOLS[stack]


# ==============
# Node / npm
# ==============

def make_node_install() -> List[str]:
    """
    Установка зависимостей и сборка фронтенда.
    Результат сборки упаковывается в образ следующей стадией.
    """
    return [
        "npm ci || npm install",
        "npm run build",
    ]


# =========
# Java / mvn
# =========

def make_java_install() -> List[str]:
    """
    Сборка Java-проекта.
    Стратегия:
      - если есть ./mvnw, используем его;
      - иначе используем mvn из tools { }.
    """
    return [
        "if [ -f mvnw ]; then chmod +x mvnw; ./mvnw -B clean package -DskipTests; "
        "else mvn -B clean package -DskipTests; fi",
    ]


# =====================
# Python / pip
# =====================

def make_python_install() -> List[str]:
    """
    Установка зависимостей Python-проекта в изолированное окружение.
    """
    return [
        "python3 -m venv .venv",
        ". .venv/bin/activate && pip install -r requirements.txt",
    ]


def make_install_script(stack: RuntimeStack) -> List[str]:
    """
    Команды стадии установки зависимостей. Выбираются только по стеку,
    пользователь их не настраивает.
    """
    if stack == RuntimeStack.NODE:
        return make_node_install()
    if stack == RuntimeStack.JAVA:
        return make_java_install()
    if stack == RuntimeStack.PYTHON:
        return make_python_install()
    raise ValueError(f"Unsupported runtime stack: {stack}")
