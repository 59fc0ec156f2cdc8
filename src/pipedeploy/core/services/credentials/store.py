import asyncio
import hmac
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from urllib.parse import quote
from xml.etree import ElementTree

from pipedeploy.core.logs import get_logger
from pipedeploy.core.models import CredentialRecord, utcnow
from pipedeploy.core.renders.jenkins import escape_markup

from .exceptions import CredentialNotFoundError, CredentialStoreError

logger = get_logger(__name__)


class CredentialStore(ABC):
    """
    Хранилище учётных данных. Секрет принимается только на запись:
    ни один метод чтения его не возвращает.
    """

    @abstractmethod
    async def create(
        self,
        name: str,
        username: str,
        secret: str,
        description: Optional[str] = None,
    ) -> CredentialRecord:
        ...

    @abstractmethod
    async def update(
        self,
        credential_id: str,
        name: Optional[str] = None,
        username: Optional[str] = None,
        secret: Optional[str] = None,
        description: Optional[str] = None,
    ) -> CredentialRecord:
        """secret=None оставляет сохранённый секрет без изменений."""

    @abstractmethod
    async def delete(self, credential_id: str) -> None:
        ...

    @abstractmethod
    async def list(self) -> List[CredentialRecord]:
        ...

    @abstractmethod
    async def get(self, credential_id: str) -> Optional[CredentialRecord]:
        ...


class InMemoryCredentialStore(CredentialStore):
    """
    Хранилище в памяти процесса: для тестов и локального запуска без Jenkins.
    """

    def __init__(self) -> None:
        self._records: Dict[str, CredentialRecord] = {}
        self._secrets: Dict[str, str] = {}

    async def create(self, name, username, secret, description=None) -> CredentialRecord:
        now = utcnow()
        record = CredentialRecord(
            id=uuid.uuid4().hex[:12],
            name=name,
            username=username,
            description=description,
            created_at=now,
            updated_at=now,
        )
        self._records[record.id] = record
        self._secrets[record.id] = secret
        return record.model_copy()

    async def update(
        self,
        credential_id,
        name=None,
        username=None,
        secret=None,
        description=None,
    ) -> CredentialRecord:
        record = self._records.get(credential_id)
        if record is None:
            raise CredentialNotFoundError(credential_id)

        changes = {
            key: value
            for key, value in (("name", name), ("username", username), ("description", description))
            if value is not None
        }
        changes["updated_at"] = utcnow()
        record = record.model_copy(update=changes)
        self._records[credential_id] = record
        if secret is not None:
            self._secrets[credential_id] = secret
        return record.model_copy()

    async def delete(self, credential_id: str) -> None:
        if credential_id not in self._records:
            raise CredentialNotFoundError(credential_id)
        del self._records[credential_id]
        del self._secrets[credential_id]

    async def list(self) -> List[CredentialRecord]:
        return [record.model_copy() for record in self._records.values()]

    async def get(self, credential_id: str) -> Optional[CredentialRecord]:
        record = self._records.get(credential_id)
        return record.model_copy() if record else None

    def verify(self, credential_id: str, secret: str) -> bool:
        """Сверяет секрет, не раскрывая его."""
        stored = self._secrets.get(credential_id)
        if stored is None:
            return False
        return hmac.compare_digest(stored.encode(), secret.encode())


CREDENTIAL_CLASS = "com.cloudbees.plugins.credentials.impl.UsernamePasswordCredentialsImpl"

CREDENTIAL_XML_TEMPLATE = """<{cls}>
  <scope>GLOBAL</scope>
  <id>{id}</id>
  <description>{description}</description>
  <username>{username}</username>
  <password>{password}</password>
</{cls}>
"""


class JenkinsCredentialStore(CredentialStore):
    """
    Учётные данные типа «Username with password» в хранилище Jenkins.

    id учётных данных совпадает с именем: именно его пайплайн передаёт
    в credentialsId при checkout.
    """

    def __init__(self, jenkins, store: str = "system", domain: str = "_") -> None:
        self.jenkins = jenkins
        self.base_path = f"/credentials/store/{quote(store, safe='')}/domain/{quote(domain, safe='')}"

    def _credential_path(self, credential_id: str) -> str:
        return f"{self.base_path}/credential/{quote(credential_id, safe='')}"

    @staticmethod
    def _record(root: ElementTree.Element) -> CredentialRecord:
        credential_id = root.findtext("id") or ""
        return CredentialRecord(
            id=credential_id,
            name=credential_id,
            username=root.findtext("username") or "",
            description=root.findtext("description") or None,
        )

    async def _fetch(self, credential_id: str) -> Optional[ElementTree.Element]:
        response = await self.jenkins.request(
            "GET", f"{self._credential_path(credential_id)}/config.xml", "credential", "get",
            missing_ok=True,
        )
        if response.status_code == 404:
            return None
        return ElementTree.fromstring(response.text)

    async def create(self, name, username, secret, description=None) -> CredentialRecord:
        document = CREDENTIAL_XML_TEMPLATE.format(
            cls=CREDENTIAL_CLASS,
            id=escape_markup(name),
            description=escape_markup(description or ""),
            username=escape_markup(username),
            password=escape_markup(secret),
        )
        await self.jenkins.request(
            "POST", f"{self.base_path}/createCredentials", "credential", "create",
            retry=False,
            content=document.encode("utf-8"),
            headers={"Content-Type": "application/xml"},
        )
        logger.info("jenkins_credential_created", credential=name)
        return CredentialRecord(id=name, name=name, username=username, description=description)

    async def update(
        self,
        credential_id,
        name=None,
        username=None,
        secret=None,
        description=None,
    ) -> CredentialRecord:
        if name is not None and name != credential_id:
            raise CredentialStoreError(
                "credential",
                "update",
                "Jenkins credentials cannot be renamed; create a new one instead",
            )

        root = await self._fetch(credential_id)
        if root is None:
            raise CredentialNotFoundError(credential_id)

        # В config.xml Jenkins отдаёт пароль в зашифрованном виде и принимает
        # его обратно, поэтому без нового секрета документ уходит как есть
        for tag, value in (("username", username), ("description", description), ("password", secret)):
            if value is None:
                continue
            node = root.find(tag)
            if node is None:
                node = ElementTree.SubElement(root, tag)
            node.text = value

        await self.jenkins.request(
            "POST", f"{self._credential_path(credential_id)}/config.xml", "credential", "update",
            content=ElementTree.tostring(root, encoding="unicode").encode("utf-8"),
            headers={"Content-Type": "application/xml"},
        )
        logger.info("jenkins_credential_updated", credential=credential_id, secret_changed=secret is not None)
        return self._record(root)

    async def delete(self, credential_id: str) -> None:
        response = await self.jenkins.request(
            "POST", f"{self._credential_path(credential_id)}/doDelete", "credential", "delete",
            missing_ok=True,
        )
        if response.status_code == 404:
            raise CredentialNotFoundError(credential_id)
        logger.info("jenkins_credential_deleted", credential=credential_id)

    async def list(self) -> List[CredentialRecord]:
        response = await self.jenkins.request(
            "GET", f"{self.base_path}/api/json", "credential", "list",
            params={"tree": "credentials[id]"},
        )
        ids = [item["id"] for item in response.json().get("credentials", []) if item.get("id")]
        records = await asyncio.gather(*(self.get(credential_id) for credential_id in ids))
        return [record for record in records if record is not None]

    async def get(self, credential_id: str) -> Optional[CredentialRecord]:
        root = await self._fetch(credential_id)
        if root is None:
            return None
        return self._record(root)
