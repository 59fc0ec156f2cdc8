import asyncio
import functools
from typing import Callable, Tuple

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)


def async_click(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return asyncio.run(func(*args, **kwargs))
    return wrapper


def remote_retrying(
    attempts: int,
    is_transient: Callable[[BaseException], bool],
    min_wait: float = 0.5,
    max_wait: float = 8.0,
) -> AsyncRetrying:
    """
    Повтор удалённого вызова с экспоненциальной паузой.
    Повторяются только временные ошибки (сеть, 5xx), последняя ошибка
    пробрасывается как есть (reraise=True).
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max(attempts, 1)),
        wait=wait_exponential(multiplier=min_wait, max=max_wait),
        retry=retry_if_exception(is_transient),
        reraise=True,
    )


def split_image_ref(image: str) -> Tuple[str, str]:
    """
    'registry:5000/team/app:1.2' -> ('registry:5000/team/app', '1.2').
    Тег отсутствует -> ('...', '').
    """
    slash = image.rfind("/")
    colon = image.rfind(":")
    if colon > slash:
        return image[:colon], image[colon + 1:]
    return image, ""
