"""Test configuration and fixtures."""

import os

# Point the module-level engine at SQLite before anything imports automation.db.session
os.environ.setdefault("DATABASE_URI", "sqlite+aiosqlite://")

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from automation.db.base import Base
from automation.db.session import create_session_factory
from automation.models import Workflow, WorkflowStep
from automation.services.dispatch import InMemoryDispatcher
from automation.services.engine import WorkflowEngine
from automation.steps import BaseStep, StepRegistry, StepServices, ReferenceDataCache


class StepRecorder:
    """Records handler calls and controls which positions fail."""

    def __init__(self):
        self.calls: List[int] = []
        self.failing = set()
        self.hooks = {}

    def fail_at(self, *positions: int) -> None:
        self.failing.update(positions)

    def on(self, position: int, hook) -> None:
        self.hooks[position] = hook


def build_test_registry(recorder: StepRecorder) -> StepRegistry:
    registry = StepRegistry()

    @registry.register("echo")
    class EchoStep(BaseStep):
        display_name = "Echo"
        description = "Records the call and echoes its config"

        async def execute(self):
            position = self.step.position
            recorder.calls.append(position)

            hook = recorder.hooks.get(position)
            if hook is not None:
                await hook(self)

            if position in recorder.failing:
                raise RuntimeError(self.config.get("error", "boom"))

            if "set" in self.config:
                for key, value in self.config["set"].items():
                    self.add_to_context(key, value)

            if self.config.get("soft_fail"):
                return self.failure_result("nothing to do")
            if "output" in self.config:
                return {"output": self.config["output"]}
            return self.success_result(f"step {position} done")

    return registry


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Provide a temporary SQLite database file."""
    return tmp_path / "automation.db"


@pytest_asyncio.fixture
async def engine(temp_db_path: Path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{temp_db_path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def dispatcher() -> InMemoryDispatcher:
    return InMemoryDispatcher()


@pytest.fixture
def recorder() -> StepRecorder:
    return StepRecorder()


@pytest.fixture
def registry(recorder: StepRecorder) -> StepRegistry:
    return build_test_registry(recorder)


@pytest.fixture
def services() -> StepServices:
    return StepServices(reference_cache=ReferenceDataCache(ttl_seconds=60))


@pytest.fixture
def workflow_engine(db, dispatcher, registry, services) -> WorkflowEngine:
    return WorkflowEngine(db, dispatcher=dispatcher, registry=registry, services=services)


@pytest.fixture
def make_workflow(db):
    """Factory persisting a workflow with steps built from dicts."""

    async def _make_workflow(
        steps: Optional[List[Dict[str, Any]]] = None,
        status: str = "active",
        trigger_type: str = "manual",
        trigger_config: Optional[Dict[str, Any]] = None,
        tenant_id: str = "tenant-1",
        name: str = "Monthly close",
        **fields,
    ) -> Workflow:
        workflow = Workflow(
            tenant_id=tenant_id,
            name=name,
            status=status,
            trigger_type=trigger_type,
            trigger_config=trigger_config or {},
            **fields,
        )
        db.add(workflow)
        await db.flush()

        for index, step in enumerate(steps if steps is not None else [{}] * 3, start=1):
            step = dict(step)
            db.add(WorkflowStep(
                workflow_id=workflow.id,
                step_type=step.pop("step_type", "echo"),
                name=step.pop("name", f"Echo {step.get('position', index)}"),
                position=step.pop("position", index),
                config=step.pop("config", {}),
                conditions=step.pop("conditions", {}),
                **step,
            ))

        await db.commit()
        return workflow

    return _make_workflow
