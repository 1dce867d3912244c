"""Prompt definition model.

A prompt is a named system-instruction template plus its own enablement and
audience filters. Prompt lists live in configuration; list order is priority.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, Field, field_validator

_ID_SPLIT_RE = re.compile(r"[\s,;，]+")


def parse_id_list(value: Any) -> set[str]:
    """Normalize an id list given as a string or an iterable.

    Strings are split on commas, semicolons and whitespace, which is how
    id lists are typed into settings forms.

    Args:
        value: None, a delimited string, or an iterable of ids.

    Returns:
        Set of non-empty, stripped ids.
    """
    if value is None:
        return set()
    if isinstance(value, str):
        items = _ID_SPLIT_RE.split(value)
    else:
        items = [str(item) for item in value]
    return {item.strip() for item in items if item and item.strip()}


class PromptDefinition(BaseModel):
    """A named system prompt with audience filters.

    Attributes:
        name: Display name.
        body: System instruction text sent to the model.
        enabled: Disabled prompts never apply, whatever the lists say.
        user_whitelist: Sender ids that force this prompt on.
        user_blacklist: Sender ids that force this prompt off.
        group_whitelist: Group ids that force this prompt on.
        group_blacklist: Group ids that force this prompt off.
        whitelist_enabled: When False both whitelists are ignored.
        blacklist_enabled: When False both blacklists are ignored.
    """

    name: str = Field(..., min_length=1)
    body: str = ""
    enabled: bool = True
    user_whitelist: set[str] = Field(default_factory=set)
    user_blacklist: set[str] = Field(default_factory=set)
    group_whitelist: set[str] = Field(default_factory=set)
    group_blacklist: set[str] = Field(default_factory=set)
    whitelist_enabled: bool = True
    blacklist_enabled: bool = True

    @field_validator(
        "user_whitelist", "user_blacklist", "group_whitelist", "group_blacklist", mode="before"
    )
    @classmethod
    def _coerce_id_list(cls, value: Any) -> set[str]:
        return parse_id_list(value)

    def is_user_whitelisted(self, sender_id: str | None) -> bool:
        return self.whitelist_enabled and bool(sender_id) and sender_id in self.user_whitelist

    def is_group_whitelisted(self, group_id: str | None) -> bool:
        return self.whitelist_enabled and bool(group_id) and group_id in self.group_whitelist

    def is_user_blacklisted(self, sender_id: str | None) -> bool:
        return self.blacklist_enabled and bool(sender_id) and sender_id in self.user_blacklist

    def is_group_blacklisted(self, group_id: str | None) -> bool:
        return self.blacklist_enabled and bool(group_id) and group_id in self.group_blacklist
