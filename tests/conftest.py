# ============================================================================
# TEST FIXTURES
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Tests - Shared fakes for service tests
# PURPOSE: In-memory pool, connection and instance store
# CREATED: 12 OCT 2026
# ============================================================================
"""
Shared fixtures.

FakePool mimics psycopg_pool.AsyncConnectionPool closely enough for the
services: pool.connection() yields a connection whose transaction()
snapshots the in-memory store and restores it when the block raises.

FakeInstanceRepository keeps the version-column semantics of the real
repository so optimistic-lock paths behave the same.
"""

import copy
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import pytest

from core.models import InstanceStep, WorkflowInstance
from core.observability import get_metrics


class InMemoryStore:
    def __init__(self):
        self.instances: Dict[str, WorkflowInstance] = {}
        self.steps: Dict[str, InstanceStep] = {}

    def snapshot(self):
        return copy.deepcopy((self.instances, self.steps))

    def restore(self, snapshot) -> None:
        self.instances, self.steps = snapshot


class FakeConnection:
    def __init__(self, store: InMemoryStore):
        self.store = store
        self.commits = 0
        self.rollbacks = 0

    @asynccontextmanager
    async def transaction(self):
        snapshot = self.store.snapshot()
        try:
            yield
        except Exception:
            self.store.restore(snapshot)
            self.rollbacks += 1
            raise
        self.commits += 1


class FakePool:
    def __init__(self, store: Optional[InMemoryStore] = None):
        self.store = store or InMemoryStore()
        self.conn = FakeConnection(self.store)

    @asynccontextmanager
    async def connection(self):
        yield self.conn


class FakeInstanceRepository:
    """Dict-backed stand-in for repositories.InstanceRepository."""

    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(self, instance, steps, conn=None):
        self.store.instances[instance.instance_id] = instance.model_copy(deep=True)
        for step in steps:
            self.store.steps[step.step_id] = step.model_copy(deep=True)
        return instance

    async def get(self, instance_id, conn=None):
        found = self.store.instances.get(instance_id)
        return found.model_copy(deep=True) if found else None

    async def lock_instance(self, instance_id, conn):
        return await self.get(instance_id)

    async def update_instance(self, instance, conn=None):
        stored = self.store.instances.get(instance.instance_id)
        if stored is None or stored.version != instance.version:
            return False
        instance.version += 1
        self.store.instances[instance.instance_id] = instance.model_copy(deep=True)
        return True

    async def list_instances(self, template_id=None, case_id=None, status=None, limit=100, conn=None):
        result = [
            i.model_copy(deep=True) for i in self.store.instances.values()
            if (template_id is None or i.template_id == template_id)
            and (case_id is None or i.case_id == case_id)
            and (status is None or i.status == status)
        ]
        return result[:limit]

    async def get_steps(self, instance_id, conn=None) -> List[InstanceStep]:
        steps = [s for s in self.store.steps.values() if s.instance_id == instance_id]
        return [s.model_copy(deep=True) for s in sorted(steps, key=lambda s: s.template_order)]

    async def get_step(self, step_id, conn=None):
        found = self.store.steps.get(step_id)
        return found.model_copy(deep=True) if found else None

    async def update_step(self, step, conn=None):
        stored = self.store.steps.get(step.step_id)
        if stored is None or stored.version != step.version:
            return False
        step.version += 1
        self.store.steps[step.step_id] = step.model_copy(deep=True)
        return True


class RecordingSink:
    """Notification sink that remembers what it was sent."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send(self, notification) -> None:
        if self.fail:
            raise RuntimeError("sink unavailable")
        self.sent.append(notification)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def fake_pool(store):
    return FakePool(store)


@pytest.fixture
def instance_repo(store):
    return FakeInstanceRepository(store)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture(autouse=True)
def clear_metrics():
    get_metrics().clear()
    yield
    get_metrics().clear()


@pytest.fixture
def failing_sink():
    return RecordingSink(fail=True)
