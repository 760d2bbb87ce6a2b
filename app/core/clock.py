from datetime import UTC, datetime


class Clock:
    """Source of the current instant. Injected so tests can pin "now"."""

    def now(self) -> datetime:
        return datetime.now(UTC)


system_clock = Clock()
