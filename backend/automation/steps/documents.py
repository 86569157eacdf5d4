from automation.steps.base import BaseStep
from automation.steps.registry import default_registry


@default_registry.register("check_documents")
class CheckDocumentsStep(BaseStep):
    """
    Verify that the required document types are present in the bucket
    created earlier in the run (``context["bucket"]``).

    Missing documents are an expected outcome, not an error: the step
    notifies the owner and returns ``success: False`` only when configured to
    pause.
    """

    display_name = "Check Documents"
    description = "Verify all required documents are present"
    category = "document"
    icon = "clipboard-check"
    config_schema = {
        "type": "object",
        "properties": {
            "required_documents": {
                "type": "array",
                "title": "Required Documents",
                "items": {"type": "string"},
                "default": ["bank_statement", "invoices"],
            },
            "notify_on_missing": {"type": "boolean", "default": True},
            "missing_doc_action": {
                "type": "string",
                "enum": ["notify", "pause", "continue"],
                "default": "notify",
            },
        },
        "required": [],
    }

    async def execute(self):
        bucket = self.from_context("bucket")
        if not isinstance(bucket, dict) or bucket.get("id") is None:
            return self.failure_result("No bucket found in context")

        provider = self.services.documents
        if provider is None:
            return self.failure_result("No document provider configured")

        required = self.config.get("required_documents") or ["bank_statement", "invoices"]
        aliases = self.services.reference_cache.get("document_types", {})

        self.log_info(f"Checking for required documents: {', '.join(required)}")

        present, missing = [], []
        for doc_type in required:
            count = await provider.count_documents(self.tenant_id, aliases.get(doc_type, [doc_type]), bucket["id"])
            if count:
                present.append({"type": doc_type, "count": count})
            else:
                missing.append(doc_type)

        action = self.config.get("missing_doc_action") or "notify"
        if missing:
            await self._notify_missing(missing)
            if action == "pause":
                self.add_to_context("workflow_paused", True)
                self.add_to_context("pause_reason", f"Missing documents: {', '.join(missing)}")

        self.add_to_context("document_check", {"present": present, "missing": missing})

        message = f"{len(present)} document types present"
        if missing:
            message += f", {len(missing)} missing"

        return {
            "success": not missing or action != "pause",
            "present_count": len(present),
            "missing_count": len(missing),
            "missing_types": missing,
            "message": message,
        }

    async def _notify_missing(self, missing):
        notifier = self.services.notifier
        if not self.config.get("notify_on_missing", True) or notifier is None:
            return

        period = (self.from_context("date_range") or {}).get("month_name") or "current period"
        names = ", ".join(doc_type.replace("_", " ").capitalize() for doc_type in missing)
        await notifier.notify(
            self.tenant_id,
            "Missing Documents",
            f"The following documents are missing for {period}: {names}",
            notification_type="warning",
            source="workflow",
            source_id=self.workflow_id,
        )
