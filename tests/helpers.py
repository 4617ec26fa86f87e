from datetime import datetime, timezone

PASSWORD = "Sunflower123"


class FakeClock:
    """Controllable `now()` for expiry tests"""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta):
        self.now = self.now + delta
