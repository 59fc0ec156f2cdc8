from typing import List, Optional

from pipedeploy.exception import PipelineValidationError, RemoteCallError


class CredentialStoreError(RemoteCallError):
    """
    Ошибка хранилища учётных данных (Jenkins credentials store).
    """

    system = "credential-store"


class CredentialNotFoundError(PipelineValidationError):
    def __init__(self, credential_id: str, *args) -> None:
        description = f"Credential {credential_id!r} does not exist"
        super().__init__(*args, description=description)
        self.credential_id = credential_id


class CredentialInUseError(PipelineValidationError):
    """
    Удаление запрещено: на учётные данные ссылаются живые джобы.
    """

    def __init__(self, credential_id: str, jobs: List[str], logs: Optional[List[str]] = None, *args) -> None:
        description = (
            f"Credential {credential_id!r} is referenced by job(s) {', '.join(jobs)}; "
            "update or delete those jobs first"
        )
        super().__init__(*args, description=description, logs=logs)
        self.credential_id = credential_id
        self.jobs = jobs
