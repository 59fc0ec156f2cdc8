from .exceptions import CredentialInUseError, CredentialNotFoundError, CredentialStoreError
from .resolver import CredentialResolver
from .store import CredentialStore, InMemoryCredentialStore, JenkinsCredentialStore

__all__ = [
    "CredentialResolver",
    "CredentialStore",
    "InMemoryCredentialStore",
    "JenkinsCredentialStore",
    "CredentialStoreError",
    "CredentialNotFoundError",
    "CredentialInUseError",
]
