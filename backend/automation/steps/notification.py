from automation.core.utils import utcnow
from automation.steps.base import BaseStep
from automation.steps.registry import default_registry


@default_registry.register("send_notification")
class SendNotificationStep(BaseStep):
    display_name = "Send Notification"
    description = "Send an in-app notification to the workflow owner"
    category = "notification"
    icon = "bell"
    config_schema = {
        "type": "object",
        "properties": {
            "title": {
                "type": "string",
                "title": "Notification Title",
                "description": "Title of the notification. Supports {{variables}}.",
                "maxLength": 100,
            },
            "message": {
                "type": "string",
                "title": "Message",
                "description": "Body of the notification. Supports {{variables}}.",
                "maxLength": 500,
            },
            "notification_type": {
                "type": "string",
                "enum": ["info", "success", "warning", "error"],
                "default": "info",
            },
        },
        "required": ["title", "message"],
    }

    async def execute(self):
        title = self.interpolate(self.config.get("title") or "Workflow Notification")
        message = self.interpolate(self.config.get("message") or "")
        notification_type = self.config.get("notification_type") or "info"

        notification_id = None
        notifier = self.services.notifier
        if notifier is not None:
            notification_id = await notifier.notify(
                self.tenant_id,
                title,
                message,
                notification_type=notification_type,
                source="workflow",
                source_id=self.workflow_id,
            )
        else:
            self.log_info("No notifier configured; notification recorded in context only")

        self.log_info(f"Notification sent: {title}")

        self.add_to_context("last_notification", {
            "id": notification_id,
            "tenant_id": self.tenant_id,
            "title": title,
            "message": message,
            "notification_type": notification_type,
            "source": "workflow",
            "source_id": self.workflow_id,
            "created_at": utcnow().isoformat(),
        })

        return {
            "notification_sent": notification_id is not None,
            "title": title,
            "message": message,
            "type": notification_type,
        }


default_registry.alias("notify", "send_notification")
