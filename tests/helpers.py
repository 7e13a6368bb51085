"""Test doubles and small parsers shared across the test modules."""

import re
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

PASSWORD = "P@ss1234"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send(self, to_address, subject, body):
        if self.fail:
            raise ConnectionRefusedError("smtp down")
        self.sent.append((to_address, subject, body))


def code_in(body):
    """The six-digit sign-in code inside a 2FA message body."""
    return re.search(r"\b(\d{6})\b", body).group(1)


def link_params(body):
    """Query parameters of the first link inside a message body."""
    link = re.search(r"(https?://\S+)", body).group(1)
    return {k: v[0] for k, v in parse_qs(urlparse(link).query).items()}


def wrong_code(code):
    return "000000" if code != "000000" else "111111"
