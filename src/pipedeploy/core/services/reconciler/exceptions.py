from typing import List, Optional

from pipedeploy.core.models import JobState, Operation, ResourceKind
from pipedeploy.exception import PipeDeployError, PipelineValidationError


class JobExistsError(PipelineValidationError):
    def __init__(self, name: str, state: JobState, *args) -> None:
        description = f"Job {name!r} already exists (state: {state.value})"
        super().__init__(*args, description=description)
        self.name = name
        self.state = state


class JobNotFoundError(PipelineValidationError):
    def __init__(self, name: str, *args) -> None:
        description = f"Job {name!r} is not managed by pipedeploy"
        super().__init__(*args, description=description)
        self.name = name


class JobStateError(PipelineValidationError):
    """
    Операция недопустима в текущем состоянии джоба
    (например, запуск сборки у джоба в partial-failure).
    """

    def __init__(self, name: str, state: JobState, operation: str, hint: str = "", *args) -> None:
        description = f"Cannot {operation} job {name!r} in state {state.value}"
        if hint:
            description += f": {hint}"
        super().__init__(*args, description=description)
        self.name = name
        self.state = state
        self.operation = operation


class PartialFailureError(PipeDeployError):
    """
    Многошаговая операция остановилась на failed_step.
    Состояние сохранено в JobRecord: повтор той же операции продолжит с этого шага.
    """

    def __init__(
        self,
        job_name: str,
        operation: Operation,
        failed_step: ResourceKind,
        cause: BaseException,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = (
            f"{operation.value} of job {job_name!r} stopped at step "
            f"{failed_step.value!r}: {cause}. Retry the same operation to resume."
        )
        super().__init__(*args, description=description, logs=logs)
        self.job_name = job_name
        self.operation = operation
        self.failed_step = failed_step
        self.cause = cause
