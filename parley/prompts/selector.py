"""Prompt selection decision engine.

Decides which configured prompts apply to a message from a given sender,
optionally inside a group chat.

Per-prompt precedence chain (highest first):
    1. Prompt disabled          -> FORCE_OFF (lists never override this)
    2. Sender in user whitelist -> FORCE_ON
    3. Group in group whitelist -> FORCE_ON
    4. Sender in user blacklist -> FORCE_OFF
    5. Group in group blacklist -> FORCE_OFF
    6. Otherwise                -> DEFAULT if AI is enabled, else FORCE_OFF

Aggregation:
    - Any FORCE_ON: only the first FORCE_ON prompt (in list order) applies.
    - Else any DEFAULT: every DEFAULT prompt applies, in list order.
    - Else nothing applies and no suggestions should be generated.

Usage:
    from parley.prompts import select_prompts

    selected = select_prompts(config.prompts, sender_id="10001", group_id=None,
                              ai_enabled=config.ai_enabled)
    if not selected:
        return  # suppressed for this sender
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import Enum

from parley.prompts.models import PromptDefinition

logger = logging.getLogger(__name__)

PROMPT_SEPARATOR = "\n\n"


class PromptStatus(str, Enum):
    """Status of a single prompt for one (sender, group) pair."""

    FORCE_ON = "force_on"
    FORCE_OFF = "force_off"
    DEFAULT = "default"


def calculate_status(
    prompt: PromptDefinition,
    sender_id: str | None,
    group_id: str | None,
    ai_enabled: bool,
) -> PromptStatus:
    """Compute the status of ``prompt`` for a sender and optional group."""
    if not prompt.enabled:
        return PromptStatus.FORCE_OFF
    if prompt.is_user_whitelisted(sender_id):
        return PromptStatus.FORCE_ON
    if prompt.is_group_whitelisted(group_id):
        return PromptStatus.FORCE_ON
    if prompt.is_user_blacklisted(sender_id):
        return PromptStatus.FORCE_OFF
    if prompt.is_group_blacklisted(group_id):
        return PromptStatus.FORCE_OFF
    return PromptStatus.DEFAULT if ai_enabled else PromptStatus.FORCE_OFF


def select_prompts(
    prompts: Sequence[PromptDefinition] | None,
    sender_id: str | None,
    group_id: str | None,
    ai_enabled: bool,
) -> list[PromptDefinition]:
    """Select the prompts that apply to a message.

    Args:
        prompts: Configured prompts in priority order. None means no prompts.
        sender_id: Identifier of the message sender.
        group_id: Group identifier, or None for a direct conversation.
        ai_enabled: Global AI switch; governs prompts not named by any list.

    Returns:
        A single-element list on a whitelist hit, all DEFAULT prompts otherwise,
        or an empty list when every prompt is off for this sender.
    """
    if not prompts:
        return []

    force_on: list[PromptDefinition] = []
    defaults: list[PromptDefinition] = []

    for prompt in prompts:
        status = calculate_status(prompt, sender_id, group_id, ai_enabled)
        logger.debug(
            "[%s] status=%s for sender=%s group=%s", prompt.name, status.value, sender_id, group_id
        )
        if status is PromptStatus.FORCE_ON:
            force_on.append(prompt)
        elif status is PromptStatus.DEFAULT:
            defaults.append(prompt)

    if force_on:
        selected = force_on[0]
        logger.debug("Whitelist hit: %s for sender=%s group=%s", selected.name, sender_id, group_id)
        return [selected]

    if defaults:
        logger.debug(
            "Using %d default prompt(s) for sender=%s group=%s", len(defaults), sender_id, group_id
        )
        return defaults

    logger.debug("All prompts suppressed for sender=%s group=%s", sender_id, group_id)
    return []


def get_selected_prompt(
    prompts: Sequence[PromptDefinition] | None,
    sender_id: str | None,
    group_id: str | None,
    ai_enabled: bool,
) -> PromptDefinition | None:
    """Return the highest-priority applicable prompt, or None if suppressed."""
    selected = select_prompts(prompts, sender_id, group_id, ai_enabled)
    return selected[0] if selected else None


def combine_prompt_bodies(prompts: Sequence[PromptDefinition]) -> str:
    """Join selected prompt bodies into one system instruction.

    Bodies keep their list order and are separated by a blank line. Empty
    bodies are skipped.
    """
    return PROMPT_SEPARATOR.join(p.body.strip() for p in prompts if p.body.strip())
