import pytest
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator

from clinic.models import User
from clinic.realtime.consumers import PermissionUpdatesConsumer
from clinic.services.notifications import user_group

# channels closes stale DB connections on each dispatch, which needs DB access.
pytestmark = pytest.mark.django_db


def test_anonymous_socket_is_closed():
    async def run():
        communicator = WebsocketCommunicator(PermissionUpdatesConsumer.as_asgi(), "/ws/permissions/")
        connected, _ = await communicator.connect()
        await communicator.disconnect()
        return connected

    assert async_to_sync(run)() is False


def test_permission_change_reaches_user_socket():
    user = User(pk=3, username='desk')

    async def run():
        communicator = WebsocketCommunicator(PermissionUpdatesConsumer.as_asgi(), "/ws/permissions/")
        communicator.scope["user"] = user
        connected, _ = await communicator.connect()
        welcome = await communicator.receive_json_from()
        await get_channel_layer().group_send(user_group(user.pk), {"type": "permission.changed"})
        pushed = await communicator.receive_json_from()
        await communicator.disconnect()
        return connected, welcome, pushed

    connected, welcome, pushed = async_to_sync(run)()
    assert connected is True
    assert welcome["type"] == "welcome"
    assert pushed == {"type": "permission_changed"}
