"""
LLM task configuration.

Each call site names a task; the task decides sampling temperature and the
output token limit. Connection settings (key, endpoint, model) come from the
application Settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TaskType(str, Enum):
    """Supported LLM generation tasks."""
    ANALYSIS = "analysis"                    # Company metrics narrative
    SEARCH_CLASSIFIER = "search_classifier"  # YES/NO: does the question need live data
    CHAT = "chat"                            # Context-assembled chat turn
    DOCUMENT = "document"                    # Uploaded document findings


@dataclass(frozen=True)
class TaskConfig:
    """Sampling configuration for a task type."""
    temperature: float = 0.7
    max_tokens: int = 2048


TASK_CONFIGS: dict[TaskType, TaskConfig] = {
    TaskType.ANALYSIS: TaskConfig(temperature=0.7, max_tokens=2048),
    TaskType.SEARCH_CLASSIFIER: TaskConfig(temperature=0.0, max_tokens=5),
    TaskType.CHAT: TaskConfig(temperature=0.7, max_tokens=4000),
    TaskType.DOCUMENT: TaskConfig(temperature=0.3, max_tokens=4000),
}


def get_task_config(task: TaskType) -> TaskConfig:
    return TASK_CONFIGS.get(task, TaskConfig())
