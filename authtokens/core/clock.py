"""Injectable time source for token issuance and verification."""

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Supplies the current time as whole Unix seconds."""

    def unix_timestamp(self) -> int: ...


class SystemClock:
    """Clock backed by the host's wall time."""

    def unix_timestamp(self) -> int:
        return int(time.time())
