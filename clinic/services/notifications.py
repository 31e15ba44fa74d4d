"""Push access-control change notices to connected clients."""
from __future__ import annotations

import logging
from typing import Iterable

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def user_group(user_id: int) -> str:
    return f"user_{user_id}"


def notify_permission_changed(user_ids: Iterable[int]) -> int:
    """Tell each user's sockets to refetch grants.  Returns the number notified."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return 0
    sent = 0
    for user_id in sorted(set(user_ids)):
        async_to_sync(channel_layer.group_send)(
            user_group(user_id),
            {"type": "permission.changed"},
        )
        sent += 1
    if sent:
        logger.debug("permission change pushed to %d user(s)", sent)
    return sent
