import json

import aiohttp
import pytest
from stream_chat.base.exceptions import StreamAPIException

from modrelay.app.moderation.bootstrap import FALLBACK_BLOCKLIST, reconcile_blocklist
from modrelay.app.moderation.errors import CollaboratorCallFailure
from modrelay.app.services.stream import StreamChatBackend, split_cid


def api_error(code, message, status_code=400):
    return StreamAPIException(json.dumps({"code": code, "message": message}), status_code)


class StubChannel:
    def __init__(self, client, channel_type, channel_id, data=None):
        self.client = client
        self.channel_type = channel_type
        self.channel_id = channel_id
        self.data = data

    async def create(self, user_id):
        self.client._raise("create")
        self.client.calls.append(("create", self.channel_type, self.channel_id, user_id))

    async def add_members(self, members):
        self.client._raise("add_members")

    async def send_message(self, message, user_id):
        self.client._raise("send_message")
        self.client.calls.append(("send_message", self.channel_type, self.channel_id, user_id))
        return {"message": {"id": "x1", **message}}


class StubStreamClient:
    """Replaces the SDK client; ``errors`` maps a call name to a list of exceptions to raise in turn."""

    def __init__(self):
        self.errors = {}
        self.calls = []

    def _raise(self, op):
        queue = self.errors.get(op)
        if queue:
            raise queue.pop(0)

    def channel(self, channel_type, channel_id=None, data=None):
        return StubChannel(self, channel_type, channel_id, data)

    async def flag_message(self, target_id, **options):
        self._raise("flag_message")
        return {"flag": {"target_message_id": target_id}}

    async def get_message(self, message_id):
        self._raise("get_message")
        return {"message": {"id": message_id}}

    async def update_channel_type(self, channel_type, **settings):
        self._raise("update_channel_type")
        self.calls.append(("update_channel_type", channel_type, settings))
        return settings

    async def close(self):
        pass


@pytest.fixture()
async def stream_backend():
    backend = StreamChatBackend("key", "secret")
    await backend.client.close()
    backend.client = StubStreamClient()
    return backend


@pytest.mark.anyio
async def test_api_error_code_mapped(stream_backend):
    stream_backend.client.errors["update_channel_type"] = [api_error(4, "invalid block list name")]
    with pytest.raises(CollaboratorCallFailure) as info:
        await stream_backend.update_channel_type("messaging", blocklist="nope")
    err = info.value
    assert err.code == 4
    assert err.status_code == 400
    assert "invalid block list name" in err.message
    assert err.retryable is False


@pytest.mark.anyio
async def test_invalid_blocklist_from_sdk_triggers_fallback(stream_backend):
    stream_backend.client.errors["update_channel_type"] = [api_error(4, "invalid block list name")]
    applied = await reconcile_blocklist(stream_backend, "messaging", "custom_list")
    assert applied == FALLBACK_BLOCKLIST
    assert stream_backend.client.calls[-1] == (
        "update_channel_type",
        "messaging",
        {"blocklist": FALLBACK_BLOCKLIST, "blocklist_behavior": "flag"},
    )


@pytest.mark.anyio
async def test_existing_channel_tolerated(stream_backend):
    stream_backend.client.errors["create"] = [api_error(16, "channel already exists")]
    cid = await stream_backend.ensure_channel("messaging", "general", "alice", ["alice"])
    assert cid == "messaging:general"


@pytest.mark.anyio
async def test_other_create_error_raised(stream_backend):
    stream_backend.client.errors["create"] = [api_error(17, "not allowed", status_code=403)]
    with pytest.raises(CollaboratorCallFailure) as info:
        await stream_backend.ensure_channel("messaging", "general", "alice", ["alice"])
    assert info.value.code == 17
    assert info.value.status_code == 403


retryable_statuses = [429, 500, 503]


@pytest.mark.parametrize("status_code", retryable_statuses)
@pytest.mark.anyio
async def test_throttle_and_server_errors_retryable(stream_backend, status_code):
    stream_backend.client.errors["flag_message"] = [api_error(9, "try later", status_code=status_code)]
    with pytest.raises(CollaboratorCallFailure) as info:
        await stream_backend.flag_message("m1", user_id="system-bot")
    assert info.value.retryable is True
    assert info.value.status_code == status_code


@pytest.mark.anyio
async def test_transport_error_retryable(stream_backend):
    stream_backend.client.errors["send_message"] = [aiohttp.ClientError("connection reset")]
    with pytest.raises(CollaboratorCallFailure) as info:
        await stream_backend.send_message("messaging", "general", {"text": "hi", "type": "system"}, "system-bot")
    assert info.value.retryable is True
    assert info.value.code is None
    assert info.value.message.startswith("send_message:")


@pytest.mark.anyio
async def test_calls_pass_through(stream_backend):
    resp = await stream_backend.send_message("messaging", "general", {"text": "hi"}, "system-bot")
    assert resp["message"]["text"] == "hi"
    assert ("send_message", "messaging", "general", "system-bot") in stream_backend.client.calls
    assert (await stream_backend.get_message("m1"))["message"]["id"] == "m1"


def test_split_cid():
    assert split_cid("messaging:general") == ("messaging", "general")
    assert split_cid("livestream:a:b") == ("livestream", "a:b")
    assert split_cid("general") is None
    assert split_cid(":x") is None
    assert split_cid(None) is None
