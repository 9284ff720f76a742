"""Tests for the task registry."""

import pytest

from quotagate.errors import UnknownTaskError
from quotagate.tasks import BUILTIN_TASKS, JSON_MIME_TYPE, TaskSpec, get_task
from quotagate.tiers import ModelTier


class TestBuiltinTasks:
    """Tests for the built-in task registry."""

    def test_registry_keys_match_names(self) -> None:
        """Test each task is registered under its own name."""
        for name, task in BUILTIN_TASKS.items():
            assert task.name == name

    @pytest.mark.parametrize("name", ["prospect_search", "strategic_plan"])
    def test_primary_default_tasks(self, name: str) -> None:
        """Test heavyweight tasks default to the primary tier."""
        assert get_task(name).default_tier is ModelTier.PRIMARY

    def test_lead_enhancement_uses_search_and_json(self) -> None:
        """Test the lead audit requests grounded JSON output."""
        task = get_task("enhance_lead")
        assert task.config.use_search is True
        assert task.config.response_mime_type == JSON_MIME_TYPE
        assert task.retry_budget == 3

    def test_connection_test_is_single_attempt(self) -> None:
        """Test the reachability check never retries."""
        task = get_task("connection_test")
        assert task.retry_budget == 1
        assert task.default_tier is ModelTier.SECONDARY


class TestGetTask:
    """Tests for task lookup."""

    def test_unknown_task(self) -> None:
        """Test unknown names raise with the available list."""
        with pytest.raises(UnknownTaskError) as exc_info:
            get_task("summarize_everything")
        assert "ask_question" in exc_info.value.available

    def test_custom_registry(self) -> None:
        """Test lookups against a caller-supplied registry."""
        registry = {"triage": TaskSpec(name="triage", default_tier=ModelTier.PRIMARY)}
        assert get_task("triage", registry).default_tier is ModelTier.PRIMARY
        with pytest.raises(UnknownTaskError):
            get_task("ask_question", registry)

    def test_invalid_retry_budget(self) -> None:
        """Test a task cannot be defined with zero attempts."""
        with pytest.raises(ValueError, match="at least 1"):
            TaskSpec(name="broken", retry_budget=0)

    def test_default_budget_is_unset(self) -> None:
        """Test tasks without a budget defer to the invoker."""
        assert TaskSpec(name="plain").retry_budget is None
