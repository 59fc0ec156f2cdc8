from typing import List, Optional

from pipedeploy.exception import PipelineValidationError


class JobNameError(PipelineValidationError):
    """
    Имя джоба не проходит общую грамматику Jenkins и Kubernetes.
    reason: классифицированная причина (NameViolation), hint: подсказка.
    """

    def __init__(self, name: str, reason, hint: str, *args) -> None:
        description = f"Invalid job name {name!r}: {hint}"
        super().__init__(*args, description=description)
        self.name = name
        self.reason = reason
        self.hint = hint


class IncompleteConfigError(PipelineValidationError):
    """
    В конфигурации не хватает обязательных полей для выбранного режима.
    """

    def __init__(self, name: str, missing: List[str], *args) -> None:
        description = f"Pipeline config {name!r} is incomplete: {', '.join(missing)}"
        super().__init__(*args, description=description)
        self.name = name
        self.missing = missing


class ResourceNameError(PipelineValidationError):
    """
    Производное имя ресурса кластера недопустимо (например, имя Service).
    """

    def __init__(self, kind: str, resource_name: str, hint: str, *args) -> None:
        description = f"Derived {kind} name {resource_name!r} is invalid: {hint}"
        super().__init__(*args, description=description)
        self.kind = kind
        self.resource_name = resource_name


class ImmutableFieldError(PipelineValidationError):
    """
    Попытка поменять имя или стек у уже существующего джоба.
    """

    def __init__(self, name: str, field: str, current: str, requested: Optional[str], *args) -> None:
        description = (
            f"Field {field!r} of job {name!r} is immutable "
            f"(current {current!r}, requested {requested!r})"
        )
        super().__init__(*args, description=description)
        self.name = name
        self.field = field
        self.current = current
        self.requested = requested
