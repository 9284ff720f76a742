"""Logical tasks and their default tier, retry budget and output options."""

from dataclasses import dataclass, field

from quotagate.adapters.base import GenerationConfig
from quotagate.errors import UnknownTaskError
from quotagate.tiers import ModelTier

JSON_MIME_TYPE = "application/json"


@dataclass(frozen=True)
class TaskSpec:
    """
    Defaults applied when a caller invokes a logical task.

    The caller's preference and retry budget override these.
    """

    name: str
    """Registry key."""

    default_tier: ModelTier = ModelTier.SECONDARY
    """Tier used by auto resolution unless the primary tier is exhausted."""

    retry_budget: int | None = None
    """Maximum attempts for one invocation (None uses the invoker default)."""

    config: GenerationConfig = field(default_factory=GenerationConfig)
    """Output options for the provider call."""

    description: str = ""

    def __post_init__(self) -> None:
        if self.retry_budget is not None and self.retry_budget < 1:
            raise ValueError(f"Task {self.name} needs a retry budget of at least 1")


BUILTIN_TASKS: dict[str, TaskSpec] = {
    "enhance_lead": TaskSpec(
        name="enhance_lead",
        default_tier=ModelTier.SECONDARY,
        retry_budget=3,
        config=GenerationConfig(response_mime_type=JSON_MIME_TYPE, use_search=True),
        description="Audit a lead's web presence with search grounding",
    ),
    "prospect_search": TaskSpec(
        name="prospect_search",
        default_tier=ModelTier.PRIMARY,
        retry_budget=3,
        config=GenerationConfig(use_search=True),
        description="Find prospective companies with search grounding",
    ),
    "prospect_extract": TaskSpec(
        name="prospect_extract",
        default_tier=ModelTier.SECONDARY,
        retry_budget=2,
        config=GenerationConfig(response_mime_type=JSON_MIME_TYPE),
        description="Extract structured prospects from search results",
    ),
    "campaign": TaskSpec(
        name="campaign",
        default_tier=ModelTier.SECONDARY,
        retry_budget=2,
        config=GenerationConfig(response_mime_type=JSON_MIME_TYPE),
        description="Draft an outreach campaign sequence",
    ),
    "content_ideas": TaskSpec(
        name="content_ideas",
        default_tier=ModelTier.SECONDARY,
        retry_budget=2,
        config=GenerationConfig(response_mime_type=JSON_MIME_TYPE),
        description="Suggest content ideas for a topic",
    ),
    "strategic_plan": TaskSpec(
        name="strategic_plan",
        default_tier=ModelTier.PRIMARY,
        retry_budget=2,
        config=GenerationConfig(response_mime_type=JSON_MIME_TYPE),
        description="Produce a strategic work plan",
    ),
    "ask_question": TaskSpec(
        name="ask_question",
        default_tier=ModelTier.SECONDARY,
        retry_budget=2,
        description="Answer a free-form question",
    ),
    "marketing_copy": TaskSpec(
        name="marketing_copy",
        default_tier=ModelTier.SECONDARY,
        retry_budget=2,
        description="Write marketing copy",
    ),
    "connection_test": TaskSpec(
        name="connection_test",
        default_tier=ModelTier.SECONDARY,
        retry_budget=1,
        description="Single-attempt provider reachability check",
    ),
}


def get_task(name: str, registry: dict[str, TaskSpec] | None = None) -> TaskSpec:
    """
    Get a task by name.

    Args:
        name: Task name
        registry: Registry to search (defaults to the built-in tasks)

    Returns:
        Matching task

    Raises:
        UnknownTaskError: If the task is not registered
    """
    tasks = BUILTIN_TASKS if registry is None else registry
    if name in tasks:
        return tasks[name]
    raise UnknownTaskError(name, list(tasks.keys()))
