from .base import BuildServer
from .client import JenkinsClient, normalize_build_status, normalize_color
from .exceptions import BuildServerError

__all__ = [
    "BuildServer",
    "JenkinsClient",
    "BuildServerError",
    "normalize_build_status",
    "normalize_color",
]
