from typing import List, Optional


class PipeDeployError(Exception):
    """
    Базовое исключение pipedeploy.

    description: человекочитаемое описание (его печатает CLI),
    logs       : шаги, накопленные до момента ошибки.
    """

    def __init__(
        self,
        *args,
        description: str = "Something happened...",
        logs: Optional[List[str]] = None,
    ) -> None:
        super().__init__(description, *args)
        self.description = description
        self.logs: List[str] = logs or []

    def __str__(self) -> str:
        return self.description


class PipelineValidationError(PipeDeployError):
    """
    Ошибка входных данных. Возникает до любого удалённого вызова,
    повторять автоматически бессмысленно: нужно исправить запрос.
    """


class RemoteCallError(PipeDeployError):
    """
    Ошибка обращения к внешней системе (Jenkins, Kubernetes, хранилище секретов).

    Текст всегда называет систему и тип ресурса: у систем независимые
    домены отказа, и оператор должен понимать, где повторять операцию.
    """

    system: str = "remote"

    def __init__(
        self,
        resource_kind: str,
        operation: str,
        detail: str,
        status_code: Optional[int] = None,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"{self.system} {resource_kind} {operation} failed: {detail}"
        if status_code is not None:
            description += f" (HTTP {status_code})"
        super().__init__(*args, description=description, logs=logs)
        self.resource_kind = resource_kind
        self.operation = operation
        self.detail = detail
        self.status_code = status_code
