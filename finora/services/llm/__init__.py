"""LLM client, task configuration, prompts and tolerant response parsing."""

from .client import LLMClient, LLMCompletion
from .config import TaskType

__all__ = ["LLMClient", "LLMCompletion", "TaskType"]
