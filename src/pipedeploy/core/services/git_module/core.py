import asyncio
from typing import Callable, List, Optional

from git import GitCommandError
from git.cmd import Git

from pipedeploy.core.logs import get_logger

from .exceptions import GitRefNotFoundError, GitSourceError
from .models import RemoteRef
from .utils import redact, with_credentials

logger = get_logger(__name__)


def match_ref(output: str, ref: str) -> Optional[str]:
    """
    Ищет sha для ref в выводе git ls-remote.
    Для аннотированных тегов берётся коммит (строка с ^{}).
    """
    refs = {}
    for line in output.splitlines():
        if "\t" not in line:
            continue
        sha, name = line.split("\t", 1)
        refs[name.strip()] = sha.strip()

    for candidate in (
        ref,
        f"refs/heads/{ref}",
        f"refs/tags/{ref}^{{}}",
        f"refs/tags/{ref}",
    ):
        if candidate in refs:
            return refs[candidate]
    return None


class GitSourceProbe:
    """
    Проверка источника до создания джоба: доступен ли репозиторий
    и есть ли в нём нужная ветка (git ls-remote через GitPython).

    Клонирования нет, рабочая копия не создаётся.
    """

    def __init__(
        self,
        default_branch: str = "master",
        git_factory: Callable[[], Git] = Git,
    ) -> None:
        self.default_branch = default_branch
        self._git_factory = git_factory

    def _ls_remote(self, url: str, ref: str) -> str:
        git = self._git_factory()
        # без интерактивного запроса пароля: ошибка вместо зависания
        git.update_environment(GIT_TERMINAL_PROMPT="0")
        return git.ls_remote(url, ref)

    async def resolve_ref(
        self,
        repo_url: str,
        ref: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> RemoteRef:
        """
        :param repo_url: URL репозитория (https/ssh или путь до локального репо).
        :param ref:      Ветка или тег; по умолчанию default_branch.
        :raises GitSourceError: репозиторий недоступен.
        :raises GitRefNotFoundError: ветки/тега нет.
        """
        if ref is None:
            ref = self.default_branch

        logs: List[str] = []
        logs.append(f"Проверяем {ref!r} в репозитории {repo_url!r}")
        url = with_credentials(repo_url, username, password)

        try:
            output = await asyncio.to_thread(self._ls_remote, url, ref)
        except GitCommandError as e:
            detail = redact(str(e), password)
            logs.append("GitPython: ошибка при выполнении ls-remote.")
            logs.append(detail)
            logger.warning("git_ls_remote_failed", repository=repo_url, ref=ref)
            stderr = redact(str(e.stderr or "").strip(), password)
            raise GitSourceError(repo_url, stderr or "ls-remote failed", logs=logs) from e

        commit = match_ref(output, ref)
        if commit is None:
            logs.append(f"Ветка или тег {ref!r} не найдены.")
            raise GitRefNotFoundError(repo_url, ref, logs=logs)

        logs.append(f"{ref} -> {commit}")
        logger.info("git_ref_resolved", repository=repo_url, ref=ref, commit=commit)
        return RemoteRef(repository=repo_url, ref=ref, commit=commit, logs=logs)
