import asyncio
import itertools
import sys
from typing import Any, Awaitable, Callable, Optional, TextIO, TypeVar

T = TypeVar("T")

FRAMES = "|/-\\"


class Spinner:
    """
    Спиннер в виде asyncio-задачи: рисует кадры, пока выполняется операция,
    и печатает итоговую строку с результатом.
    """

    def __init__(self, text: str, stream: TextIO, interval: float = 0.1) -> None:
        self.text = text
        self.stream = stream
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    def _write(self, chunk: str) -> None:
        self.stream.write(chunk)
        self.stream.flush()

    async def _spin(self) -> None:
        for frame in itertools.cycle(FRAMES):
            self._write(f"\r{self.text} {frame}")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        self._task = asyncio.create_task(self._spin())

    async def stop(self, ok: bool) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        mark = "✅ Успешно" if ok else "❌ Ошибка"
        self._write("\r" + " " * (len(self.text) + 2) + "\r")
        self._write(f"{self.text} - {mark}\n")


async def run(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    text: str = "Загрузка",
    interval: float = 0.1,
    stream: Optional[TextIO] = None,
    **kwargs: Any,
) -> T:
    """
    Выполняет корутину func под спиннером.

    Спиннер пишет в stderr, чтобы не смешиваться с выводом команды
    (XML, скрипт). Если stderr не терминал, спиннер не рисуется.
    """
    stream = stream or sys.stderr
    if not stream.isatty():
        return await func(*args, **kwargs)

    spinner = Spinner(text, stream, interval)
    spinner.start()
    ok = False
    try:
        result = await func(*args, **kwargs)
        ok = True
        return result
    finally:
        await spinner.stop(ok)
