from channels.generic.websocket import AsyncJsonWebsocketConsumer

from clinic.services.notifications import user_group


class PermissionUpdatesConsumer(AsyncJsonWebsocketConsumer):
    """Per-user socket that is told when the user's grants change."""

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            await self.close()
            return
        self.group_name = user_group(user.id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        await self.send_json({"type": "welcome", "message": "connected"})

    async def disconnect(self, close_code):
        group_name = getattr(self, "group_name", None)
        if group_name:
            await self.channel_layer.group_discard(group_name, self.channel_name)

    async def permission_changed(self, event):
        # event: {"type": "permission.changed"}
        await self.send_json({"type": "permission_changed"})
