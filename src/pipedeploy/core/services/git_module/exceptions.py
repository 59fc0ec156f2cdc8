from typing import List, Optional

from pipedeploy.exception import RemoteCallError


class GitSourceError(RemoteCallError):
    """
    Ошибка при обращении к удалённому git-репозиторию.
    """

    system = "git"

    def __init__(
        self,
        repository: str,
        detail: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        super().__init__("repository", "ls-remote", f"{repository}: {detail}", None, logs, *args)
        self.repository = repository


class GitRefNotFoundError(GitSourceError):
    """
    Репозиторий доступен, но ветки/тега с таким именем нет.
    """

    def __init__(
        self,
        repository: str,
        ref: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        super().__init__(repository, f"ref {ref!r} not found", logs, *args)
        self.ref = ref
