import asyncio

from automation.core.utils import utcnow
from automation.steps.base import BaseStep
from automation.steps.registry import default_registry

# Longest delay a step may hold a worker for
MAX_DELAY_SECONDS = 300


@default_registry.register("delay")
class DelayStep(BaseStep):
    display_name = "Delay"
    description = "Wait for a specified duration before continuing"
    category = "utility"
    icon = "clock"
    config_schema = {
        "type": "object",
        "properties": {
            "duration": {"type": "integer", "title": "Duration", "minimum": 0, "maximum": 60, "default": 5},
            "unit": {"type": "string", "title": "Time Unit", "enum": ["seconds", "minutes"], "default": "seconds"},
        },
        "required": ["duration", "unit"],
    }

    async def execute(self):
        duration = float(self.config.get("duration", 5))
        unit = self.config.get("unit") or "seconds"

        delay_seconds = duration * 60 if unit == "minutes" else duration
        delay_seconds = max(0.0, min(delay_seconds, MAX_DELAY_SECONDS))

        self.log_info(f"Delaying for {delay_seconds} seconds")
        await asyncio.sleep(delay_seconds)

        completed_at = utcnow().isoformat()
        self.add_to_context("last_delay", {"duration": delay_seconds, "completed_at": completed_at})

        return {"delayed_seconds": delay_seconds, "completed_at": completed_at}
