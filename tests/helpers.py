# tests/helpers.py

from datetime import datetime, timedelta, timezone as dt_timezone


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingDispatcher:
    """Keeps every code it is asked to send instead of sending it."""

    outbox = []

    def __init__(self, succeed=True):
        self.succeed = succeed

    def send(self, *, mobile, code, purpose):
        RecordingDispatcher.outbox.append(
            {"mobile": mobile, "code": code, "purpose": purpose}
        )
        return self.succeed

    @classmethod
    def last_code(cls, mobile=None):
        for message in reversed(cls.outbox):
            if mobile is None or message["mobile"] == mobile:
                return message["code"]
        return None

    @classmethod
    def clear(cls):
        cls.outbox.clear()


class FailingDispatcher:
    def send(self, *, mobile, code, purpose):
        raise ConnectionError("sms gateway down")


def wrong_code(code):
    """A 6-digit code guaranteed to differ from ``code``."""
    return f"{(int(code) + 1) % 1000000:06d}"
