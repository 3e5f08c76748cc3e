"""Test data factories for the CrabNet trust service.

Factories return keyword dictionaries for the ORM models so tests can
override any column.
"""

from tests.factories.agent_factory import AgentFactory
from tests.factories.task_factory import TaskFactory
from tests.factories.vouch_factory import VouchFactory

__all__ = [
    "AgentFactory",
    "TaskFactory",
    "VouchFactory",
]
