from dataclasses import dataclass, field
from typing import List


@dataclass
class RemoteRef:
    """
    Результат проверки источника.

    repository: URL без учётных данных
    ref:        запрошенная ветка или тег
    commit:     sha, на который ref указывает сейчас
    logs:       текстовые логи шагов проверки
    """

    repository: str
    ref: str
    commit: str
    logs: List[str] = field(default_factory=list)
