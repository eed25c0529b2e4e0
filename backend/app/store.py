from copy import deepcopy
from datetime import datetime, timezone
import secrets
import string
import time
from typing import Any

_BASE36 = string.digits + string.ascii_lowercase


class InMemoryStore:
    def __init__(self) -> None:
        self.entries: dict[str, Any] = {}

    def read(self, key: str) -> Any:
        return deepcopy(self.entries.get(key))

    def write(self, key: str, value: Any) -> None:
        self.entries[key] = deepcopy(value)

    def remove(self, key: str) -> None:
        self.entries.pop(key, None)

    def scan(self, prefix: str) -> list[Any]:
        return [deepcopy(value) for key, value in self.entries.items() if key.startswith(prefix)]

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def now_iso() -> str:
        return InMemoryStore.now().isoformat(timespec="milliseconds").replace("+00:00", "Z")

    @staticmethod
    def now_ms() -> int:
        return int(time.time() * 1000)

    @staticmethod
    def make_suffix(length: int = 9) -> str:
        return "".join(secrets.choice(_BASE36) for _ in range(length))


def parse_timestamp(value: Any) -> float:
    if not isinstance(value, str) or not value:
        return 0.0
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()
