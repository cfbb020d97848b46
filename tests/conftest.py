import pytest


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self, events: list[str] | None = None):
        self.calls: list[float] = []
        self.events = events

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.events is not None:
            self.events.append(f"sleep:{seconds}")


@pytest.fixture
def sleeps():
    return RecordingSleep()
