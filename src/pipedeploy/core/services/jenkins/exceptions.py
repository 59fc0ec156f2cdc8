from typing import List, Optional

from pipedeploy.exception import RemoteCallError


class BuildServerError(RemoteCallError):
    """
    Ошибка обращения к Jenkins.

    transient = True для сетевых ошибок и 5xx: такие вызовы можно повторить.
    """

    system = "jenkins"

    def __init__(
        self,
        resource_kind: str,
        operation: str,
        detail: str,
        status_code: Optional[int] = None,
        logs: Optional[List[str]] = None,
        transient: bool = False,
        *args,
    ) -> None:
        super().__init__(resource_kind, operation, detail, status_code, logs, *args)
        self.transient = transient

    @property
    def not_found(self) -> bool:
        return self.status_code == 404
