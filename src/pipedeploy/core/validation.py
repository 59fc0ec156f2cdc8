import re
from enum import Enum
from typing import List, Optional
from xml.etree import ElementTree

from .exceptions import IncompleteConfigError, JobNameError, ResourceNameError
from .models import CustomConfig, StandardConfig

MAX_JOB_NAME_LENGTH = 63

JOB_NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")

# имя Service в Kubernetes: DNS-1035 label, начинается с буквы
DNS_1035_LABEL = re.compile(r"^[a-z]([-a-z0-9]*[a-z0-9])?$")

_ALLOWED_CHARS = frozenset("abcdefghijklmnopqrstuvwxyz0123456789-")


class NameViolation(str, Enum):
    EMPTY = "empty"
    TOO_LONG = "too-long"
    UPPERCASE = "uppercase-present"
    LEADING_HYPHEN = "leading-hyphen"
    TRAILING_HYPHEN = "trailing-hyphen"
    UNDERSCORE = "underscore-present"
    INVALID_CHARACTER = "invalid-character"


NAME_HINTS = {
    NameViolation.EMPTY: "name must not be empty",
    NameViolation.TOO_LONG: f"name must be at most {MAX_JOB_NAME_LENGTH} characters long",
    NameViolation.UPPERCASE: "name must be lowercase; replace uppercase letters",
    NameViolation.LEADING_HYPHEN: "name must not start with a hyphen",
    NameViolation.TRAILING_HYPHEN: "name must not end with a hyphen",
    NameViolation.UNDERSCORE: "underscores are not allowed; use hyphens instead",
    NameViolation.INVALID_CHARACTER: "only lowercase letters, digits and hyphens are allowed",
}


def check_job_name(name: Optional[str]) -> Optional[NameViolation]:
    """
    Проверяет имя по более строгой из грамматик Jenkins и Kubernetes.
    Возвращает None, если имя допустимо, иначе первую найденную причину.
    """
    if not name:
        return NameViolation.EMPTY
    if len(name) > MAX_JOB_NAME_LENGTH:
        return NameViolation.TOO_LONG
    if any(ch.isupper() for ch in name):
        return NameViolation.UPPERCASE
    if "_" in name:
        return NameViolation.UNDERSCORE
    if name.startswith("-"):
        return NameViolation.LEADING_HYPHEN
    if name.endswith("-"):
        return NameViolation.TRAILING_HYPHEN
    if any(ch not in _ALLOWED_CHARS for ch in name):
        return NameViolation.INVALID_CHARACTER
    return None


def validate_job_name(name: Optional[str]) -> str:
    violation = check_job_name(name)
    if violation is not None:
        raise JobNameError(name or "", violation, NAME_HINTS[violation])
    return name


def is_well_formed_xml(document: str) -> bool:
    try:
        ElementTree.fromstring(document)
    except ElementTree.ParseError:
        return False
    return True


def validate_config(config) -> None:
    """
    Проверка полноты конфигурации для её режима. Ничего не вызывает удалённо.
    """
    missing: List[str] = []

    if isinstance(config, StandardConfig):
        if not config.source.repo_url.strip():
            missing.append("source.repo_url")
        if not config.source.branch.strip():
            missing.append("source.branch")
        if not config.image.dockerfile_path.strip():
            missing.append("image.dockerfile_path")
        if not config.image.build_context.strip():
            missing.append("image.build_context")
        if config.source.credentials_id and config.source.credentials:
            missing.append("source: either credentials_id or credentials, not both")
    elif isinstance(config, CustomConfig):
        if not config.config_xml.strip():
            missing.append("config_xml")
        elif not is_well_formed_xml(config.config_xml):
            missing.append("config_xml (not well-formed XML)")
    else:
        raise TypeError(f"Unsupported pipeline config type: {type(config).__name__}")

    if missing:
        raise IncompleteConfigError(config.name, missing)


def check_resource_names(resources) -> None:
    """
    Имена производных ресурсов должны подходить Kubernetes, иначе
    джоб в Jenkins создастся, а ресурс в кластере нет.
    """
    endpoint = resources.endpoint.name
    if len(endpoint) > MAX_JOB_NAME_LENGTH or not DNS_1035_LABEL.match(endpoint):
        raise ResourceNameError(
            "endpoint",
            endpoint,
            "service names must start with a letter and be at most "
            f"{MAX_JOB_NAME_LENGTH} characters long",
        )
