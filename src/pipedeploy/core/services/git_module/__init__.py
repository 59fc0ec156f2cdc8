from .core import GitSourceProbe, match_ref

from .exceptions import (
    GitSourceError,
    GitRefNotFoundError,
)
from .models import RemoteRef

__all__ = [
    "GitSourceProbe",
    "RemoteRef",
    "match_ref",
    "GitSourceError",
    "GitRefNotFoundError",
]
