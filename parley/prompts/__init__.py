"""Prompt definitions and the selection engine."""

from parley.prompts.models import PromptDefinition, parse_id_list
from parley.prompts.selector import (
    PromptStatus,
    calculate_status,
    combine_prompt_bodies,
    get_selected_prompt,
    select_prompts,
)

__all__ = [
    "PromptDefinition",
    "PromptStatus",
    "calculate_status",
    "combine_prompt_bodies",
    "get_selected_prompt",
    "parse_id_list",
    "select_prompts",
]
