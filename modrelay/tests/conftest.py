import sys
from pathlib import Path

# Ensure repository root is on sys.path so 'import modrelay' works
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import asyncio

import pytest

from modrelay.app.moderation.errors import CollaboratorCallFailure
from modrelay.app.moderation.flag_memory import FlagMemory


# Force pytest-anyio to use asyncio backend (avoid requiring 'trio')
@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChatBackend:
    """In-memory stand-in for the Stream backend.

    ``fail`` holds operation names that should raise CollaboratorCallFailure;
    ``messages`` answers get_message by id.
    """

    def __init__(self):
        self.sent = []
        self.flagged = []
        self.upserted = []
        self.channels = []
        self.channel_type_updates = []
        self.messages = {}
        self.channel_type = {}
        self.fail = {}
        self.closed = False

    def _maybe_fail(self, op: str):
        if op in self.fail:
            raise self.fail[op]

    def create_token(self, user_id):
        return f"token-for-{user_id}"

    async def upsert_users(self, users):
        self._maybe_fail("upsert_users")
        self.upserted.extend(users)
        return {"users": {u["id"]: u for u in users}}

    async def ensure_channel(self, channel_type, channel_id, created_by_id, members):
        self._maybe_fail("ensure_channel")
        self.channels.append((channel_type, channel_id, created_by_id, list(members)))
        return f"{channel_type}:{channel_id}"

    async def add_members(self, channel_type, channel_id, members):
        self._maybe_fail("add_members")

    async def flag_message(self, message_id, user_id):
        await asyncio.sleep(0)
        self._maybe_fail("flag_message")
        self.flagged.append((message_id, user_id))
        return {"flag": {"target_message_id": message_id}}

    async def get_message(self, message_id):
        await asyncio.sleep(0)
        self._maybe_fail("get_message")
        msg = self.messages.get(message_id)
        return {"message": msg} if msg else {}

    async def update_channel_type(self, channel_type, **settings):
        self.channel_type_updates.append((channel_type, settings))
        self._maybe_fail(f"update_channel_type:{settings.get('blocklist')}")
        self.channel_type = {"channel_type": channel_type, **settings}
        return self.channel_type

    async def get_channel_type(self, channel_type):
        self._maybe_fail("get_channel_type")
        return self.channel_type

    async def send_message(self, channel_type, channel_id, message, user_id):
        # Yield like a real HTTP call so concurrent tasks interleave
        await asyncio.sleep(0)
        self._maybe_fail("send_message")
        self.sent.append({"channel_type": channel_type, "channel_id": channel_id, "user_id": user_id, **message})
        return {"message": {"id": f"sent-{len(self.sent)}", **message}}

    async def close(self):
        self.closed = True


def failure(message="boom", code=None, status_code=None):
    return CollaboratorCallFailure(message, code=code, status_code=status_code)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory(clock):
    return FlagMemory(ttl_seconds=300, clock=clock)


@pytest.fixture
def backend():
    return FakeChatBackend()


@pytest.fixture
def make_failure():
    return failure
