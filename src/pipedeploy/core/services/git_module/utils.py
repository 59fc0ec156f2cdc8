from typing import Optional
from urllib.parse import quote, urlsplit, urlunsplit


def with_credentials(url: str, username: Optional[str], password: Optional[str]) -> str:
    """
    Подставляет user:password в https-URL. ssh- и file-URL не трогаем.
    """
    if not username or not password:
        return url
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    netloc = f"{quote(username, safe='')}:{quote(password, safe='')}@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def redact(text: str, *secrets: Optional[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
            text = text.replace(quote(secret, safe=""), "***")
    return text
