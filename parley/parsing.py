"""Response parsing cascade.

Extracts a validated list of reply options from whatever text the model sent
back. Models wrap JSON in markdown fences, prepend chatter, get cut off by the
token limit mid-array, or ignore the requested format entirely, so parsing is
an ordered series of strategies from most to least structured. The first
strategy that yields at least MIN_OPTIONS non-empty options wins.

Strategies:
    1. direct      - the text is a JSON object with an options-like list field
    2. envelope    - the text is a chat-completion envelope; the cascade is
                     re-run on choices[0].message.content
    3. fenced      - first ``` / ```json block: JSON, then salvage
    4. embedded    - first brace-balanced {...} object: JSON, then salvage
    5. salvage     - quoted string literals anywhere (recovers truncated JSON)
    6. delimited   - legacy "a ||| b ||| c" format
    7. list        - numbered or bulleted lines
    8. lines       - any non-empty line that isn't JSON/code noise

A text that parses as a JSON object is only read by strategies 1 and 2; the
free-text heuristics never run over a well-formed structured document.

Strategies return candidate lists and never raise; a failed strategy is an
empty list.

Usage:
    from parley.parsing import parse_response

    outcome = parse_response(raw_text)
    if outcome.ok:
        print(outcome.options)
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from parley.observability.logging import log_event

logger = logging.getLogger(__name__)

MIN_OPTIONS = 3

# Checked in this order
OPTION_FIELDS: tuple[str, ...] = ("options", "choices", "replies", "answers", "responses")
_OPTION_FIELD_SET = frozenset(OPTION_FIELDS)

LEGACY_DELIMITER = "|||"

# Salvaged literals shorter than this are JSON punctuation, not options
MIN_SALVAGE_LENGTH = 2

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```", re.IGNORECASE)
_QUOTED_LITERAL_RE = re.compile(r'"([^"]+)"\s*,?')
_LIST_ITEM_RE = re.compile(r"^\s*(?:\d+[.、)\]]|[-*•])\s*(.+)$")
_FIELD_HEADER_RE = re.compile(r'^"?\w+"?\s*:\s*\[?\s*$', re.ASCII)
_JSON_PUNCTUATION_RE = re.compile(r'[\s\[\]{}:,"]')


class ParseFailureReason(str, Enum):
    """Why no option list could be produced."""

    UNPARSEABLE = "unparseable"
    INSUFFICIENT_OPTIONS = "insufficient_options"


class Strategy(str, Enum):
    """Name of the strategy that produced a successful parse."""

    DIRECT = "direct"
    ENVELOPE = "envelope"
    FENCED = "fenced"
    FENCED_SALVAGE = "fenced_salvage"
    EMBEDDED = "embedded"
    EMBEDDED_SALVAGE = "embedded_salvage"
    SALVAGE = "salvage"
    DELIMITED = "delimited"
    LIST = "list"
    LINES = "lines"


@dataclass(frozen=True)
class ParseOutcome:
    """Result of parsing one model response.

    Exactly one of ``options`` (success) or ``reason`` (failure) is set.

    Attributes:
        options: At least MIN_OPTIONS trimmed, non-empty options on success.
        strategy: The strategy that produced the options.
        reason: Failure reason.
        candidate_count: Largest candidate list any strategy produced.
    """

    options: tuple[str, ...] | None = None
    strategy: Strategy | None = None
    reason: ParseFailureReason | None = None
    candidate_count: int = 0

    @property
    def ok(self) -> bool:
        return self.options is not None

    @classmethod
    def success(cls, options: list[str], strategy: Strategy) -> ParseOutcome:
        if len(options) < MIN_OPTIONS:
            raise ValueError(f"A successful parse needs at least {MIN_OPTIONS} options")
        return cls(options=tuple(options), strategy=strategy, candidate_count=len(options))

    @classmethod
    def failure(cls, reason: ParseFailureReason, candidate_count: int = 0) -> ParseOutcome:
        return cls(reason=reason, candidate_count=candidate_count)


class _Attempts:
    """Tracks candidates across strategies for one cascade run."""

    def __init__(self) -> None:
        self.best_count = 0
        self.winner: tuple[list[str], Strategy] | None = None

    def offer(self, candidates: list[str], strategy: Strategy) -> bool:
        if len(candidates) >= MIN_OPTIONS:
            self.winner = (candidates, strategy)
            return True
        self.best_count = max(self.best_count, len(candidates))
        return False


# =============================================================================
# Strategy helpers
# =============================================================================


def _clean(items: list[Any]) -> list[str]:
    result = []
    for item in items:
        if isinstance(item, bool) or item is None:
            continue
        if isinstance(item, (int, float)):
            item = str(item)
        if not isinstance(item, str):
            continue
        text = item.strip()
        if text:
            result.append(text)
    return result


def _load_json_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, RecursionError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def _options_from_object(obj: dict[str, Any]) -> list[str]:
    for field_name in OPTION_FIELDS:
        value = obj.get(field_name)
        if isinstance(value, list):
            return _clean(value)
    return []


def extract_direct(text: str) -> list[str]:
    """Strategy 1: options list from a JSON object."""
    obj = _load_json_object(text.strip())
    if obj is None:
        return []
    return _options_from_object(obj)


def extract_envelope_content(obj: dict[str, Any]) -> str | None:
    """Return ``choices[0].message.content`` if present and textual."""
    choices = obj.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None


def extract_fenced_block(text: str) -> str | None:
    """Return the trimmed interior of the first fenced code block."""
    match = _FENCED_BLOCK_RE.search(text)
    if match is None:
        return None
    return match.group(1).strip()


def extract_embedded_object(text: str) -> str | None:
    """Return the first ``{...}`` substring with balanced braces."""
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    for index in range(start, len(text)):
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def salvage_literals(text: str) -> list[str]:
    """Strategy 5: collect quoted literals, skipping field names and noise."""
    result = []
    for match in _QUOTED_LITERAL_RE.finditer(text):
        value = match.group(1).strip()
        if value.lower() in _OPTION_FIELD_SET:
            continue
        if len(value) < MIN_SALVAGE_LENGTH:
            continue
        result.append(value)
    return result


def split_delimited(text: str) -> list[str]:
    """Strategy 6: legacy ``|||`` separated options."""
    if LEGACY_DELIMITER not in text:
        return []
    return [part.strip() for part in text.split(LEGACY_DELIMITER) if part.strip()]


def extract_list_items(text: str) -> list[str]:
    """Strategy 7: numbered (``1.`` ``1、`` ``1)`` ``1]``) or bulleted lines."""
    result = []
    for line in text.splitlines():
        match = _LIST_ITEM_RE.match(line)
        if match:
            item = match.group(1).strip()
            if item:
                result.append(item)
    return result


def is_option_line(line: str) -> bool:
    """True unless the line is a fence, bare JSON punctuation, or a field header."""
    if not line:
        return False
    if line.startswith("```"):
        return False
    if not _JSON_PUNCTUATION_RE.sub("", line):
        return False
    if _FIELD_HEADER_RE.match(line):
        return False
    return True


def extract_plain_lines(text: str) -> list[str]:
    """Strategy 8: every meaningful non-empty line."""
    result = []
    for line in text.splitlines():
        stripped = line.strip()
        if is_option_line(stripped):
            result.append(stripped)
    return result


# =============================================================================
# Cascade
# =============================================================================


def _run_text_cascade(text: str, attempts: _Attempts) -> bool:
    """Run strategies 1 and 3-8 over free text. True once one succeeds."""
    if attempts.offer(extract_direct(text), Strategy.DIRECT):
        return True

    fenced = extract_fenced_block(text)
    if fenced is not None:
        if attempts.offer(extract_direct(fenced), Strategy.FENCED):
            return True
        if attempts.offer(salvage_literals(fenced), Strategy.FENCED_SALVAGE):
            return True

    embedded = extract_embedded_object(text)
    if embedded is not None:
        if attempts.offer(extract_direct(embedded), Strategy.EMBEDDED):
            return True
        if attempts.offer(salvage_literals(embedded), Strategy.EMBEDDED_SALVAGE):
            return True

    later: list[tuple[Callable[[str], list[str]], Strategy]] = [
        (salvage_literals, Strategy.SALVAGE),
        (split_delimited, Strategy.DELIMITED),
        (extract_list_items, Strategy.LIST),
        (extract_plain_lines, Strategy.LINES),
    ]
    for extractor, strategy in later:
        if attempts.offer(extractor(text), strategy):
            return True
    return False


def parse_response(raw: str | None) -> ParseOutcome:
    """Parse a model response into reply options.

    Args:
        raw: Response body or message content. None and blank text fail.

    Returns:
        ParseOutcome with at least MIN_OPTIONS options, or a failure reason.
    """
    if raw is None or not raw.strip():
        logger.debug("Empty response")
        return ParseOutcome.failure(ParseFailureReason.UNPARSEABLE)

    attempts = _Attempts()
    obj = _load_json_object(raw.strip())

    if obj is not None:
        if not attempts.offer(_options_from_object(obj), Strategy.DIRECT):
            content = extract_envelope_content(obj)
            if content is not None and content.strip():
                inner = _Attempts()
                if _run_text_cascade(content, inner) and inner.winner is not None:
                    options, inner_strategy = inner.winner
                    attempts.winner = (options, Strategy.ENVELOPE)
                    log_event(
                        logger,
                        "parsing.envelope",
                        level=logging.DEBUG,
                        inner_strategy=inner_strategy.value,
                    )
                attempts.best_count = max(attempts.best_count, inner.best_count)
    else:
        _run_text_cascade(raw, attempts)

    if attempts.winner is not None:
        options, strategy = attempts.winner
        log_event(
            logger,
            "parsing.matched",
            level=logging.DEBUG,
            strategy=strategy.value,
            option_count=len(options),
        )
        return ParseOutcome.success(options, strategy)

    if attempts.best_count > 0:
        logger.debug("Too few options recovered: %d", attempts.best_count)
        return ParseOutcome.failure(ParseFailureReason.INSUFFICIENT_OPTIONS, attempts.best_count)

    logger.debug("No parsing strategy matched")
    return ParseOutcome.failure(ParseFailureReason.UNPARSEABLE)
