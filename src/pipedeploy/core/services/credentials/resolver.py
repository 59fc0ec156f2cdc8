from typing import List, Optional

from pipedeploy.core.logs import get_logger
from pipedeploy.core.models import CredentialRecord, NewCredential, StandardConfig
from pipedeploy.exception import PipelineValidationError

from .exceptions import CredentialInUseError, CredentialNotFoundError
from .store import CredentialStore

logger = get_logger(__name__)


class CredentialResolver:
    """
    Связывает ссылку на учётные данные из конфигурации с хранилищем.

    records (хранилище JobRecord) нужно только для защиты от удаления
    учётных данных, на которые ещё ссылаются джобы.
    """

    def __init__(self, store: CredentialStore, records=None) -> None:
        self.store = store
        self.records = records

    async def create(
        self,
        name: str,
        username: str,
        secret: str,
        description: Optional[str] = None,
    ) -> str:
        missing = [field for field, value in (("name", name), ("username", username), ("secret", secret)) if not value]
        if missing:
            raise PipelineValidationError(
                description=f"Credential is incomplete: {', '.join(missing)}"
            )
        record = await self.store.create(name, username, secret, description)
        logger.info("credential_created", credential=record.id, name=name)
        return record.id

    async def update(
        self,
        credential_id: str,
        name: Optional[str] = None,
        username: Optional[str] = None,
        secret: Optional[str] = None,
        description: Optional[str] = None,
    ) -> CredentialRecord:
        # пустая строка из формы значит «секрет не трогаем», а не «сделать пустым»
        if not secret:
            secret = None
        await self.resolve(credential_id)
        return await self.store.update(
            credential_id,
            name=name,
            username=username,
            secret=secret,
            description=description,
        )

    async def referencing_jobs(self, credential_id: str) -> List[str]:
        if self.records is None:
            return []
        return [
            record.name
            for record in await self.records.list()
            if isinstance(record.config, StandardConfig)
            and record.config.source.credentials_id == credential_id
        ]

    async def delete(self, credential_id: str) -> None:
        await self.resolve(credential_id)
        jobs = await self.referencing_jobs(credential_id)
        if jobs:
            raise CredentialInUseError(credential_id, jobs)
        await self.store.delete(credential_id)
        logger.info("credential_deleted", credential=credential_id)

    async def list(self) -> List[CredentialRecord]:
        return await self.store.list()

    async def get(self, credential_id: str) -> Optional[CredentialRecord]:
        return await self.store.get(credential_id)

    async def resolve(self, credential_id: str) -> CredentialRecord:
        record = await self.store.get(credential_id)
        if record is None:
            raise CredentialNotFoundError(credential_id)
        return record

    async def ensure(self, credential: NewCredential) -> str:
        """
        Переиспользует учётные данные с тем же именем или заводит новые.
        Секрет существующих учётных данных не перезаписывается.
        """
        for record in await self.store.list():
            if record.name == credential.name:
                logger.info("credential_reused", credential=record.id, name=credential.name)
                return record.id
        return await self.create(
            credential.name,
            credential.username,
            credential.secret.get_secret_value(),
            credential.description,
        )
