from automation.core.exceptions import StopWorkflowError
from automation.services.conditions import ConditionEvaluator
from automation.steps.base import BaseStep
from automation.steps.registry import default_registry


@default_registry.register("condition")
class ConditionStep(BaseStep):
    """Evaluate rules against the context and store the boolean result."""

    display_name = "Condition"
    description = "Evaluate a condition and store the result for subsequent steps"
    category = "logic"
    icon = "git-branch"
    config_schema = {
        "type": "object",
        "properties": {
            "condition_name": {
                "type": "string",
                "title": "Condition Name",
                "description": "Name to identify this condition result",
                "default": "condition_result",
            },
            "rules": {
                "type": "array",
                "title": "Rules",
                "items": {
                    "type": "object",
                    "properties": {
                        "field": {"type": "string", "title": "Field"},
                        "operator": {"type": "string", "title": "Operator"},
                        "value": {"title": "Value"},
                    },
                    "required": ["field", "operator"],
                },
            },
            "combinator": {"type": "string", "enum": ["and", "or"], "default": "and"},
            "stop_if_false": {
                "type": "boolean",
                "title": "Stop Workflow if False",
                "default": False,
            },
        },
        "required": ["rules"],
    }

    async def execute(self):
        condition_name = self.config.get("condition_name") or "condition_result"
        rules = self.config.get("rules") or []
        combinator = self.config.get("combinator") or "and"
        stop_if_false = bool(self.config.get("stop_if_false", False))

        result = ConditionEvaluator({"rules": rules, "combinator": combinator}, self.context).evaluate()

        self.log_info(f"Condition '{condition_name}' evaluated to: {result}")

        self.add_to_context(condition_name, result)
        self.add_to_context("last_condition_result", result)

        if stop_if_false and not result:
            raise StopWorkflowError(f"Condition '{condition_name}' was false, stopping workflow")

        return {
            "condition_name": condition_name,
            "result": result,
            "rules_count": len(rules),
            "combinator": combinator,
        }
