"""Reply suggestions API endpoints.

Generates AI reply options for an incoming message through the configured
model endpoint, records conversation history for callers that do not send
their own context, and exposes the AI request log.

Automatic retries for malformed model output happen inside a single request.
When they are used up the endpoint answers 503; posting the same message again
is the manual retry.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ConfigDict, Field

from api.dependencies import get_request_log, get_suggestion_service
from contracts.conversation import ContextMessage, SenderInfo
from parley.ai_log import AiLog
from parley.errors import ErrorCode, ValidationError
from parley.suggestions import SuggestionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/suggestions", tags=["suggestions"])


class ContextMessageModel(BaseModel):
    """A prior message in the conversation."""

    sender_name: str = Field(..., description="Display name of the author", examples=["Alice"])
    content: str = Field(..., description="Message text", examples=["Dinner later?"])
    is_self: bool = Field(default=False, description="True if the local user wrote it")
    timestamp: int = Field(default=0, ge=0, description="Unix epoch milliseconds")

    def to_contract(self) -> ContextMessage:
        return ContextMessage(
            sender_name=self.sender_name,
            content=self.content,
            is_self=self.is_self,
            timestamp=self.timestamp,
        )


class SuggestionRequest(BaseModel):
    """Request for reply options.

    Example:
        ```json
        {
            "message": "Are you free for dinner?",
            "sender_id": "alice",
            "sender_name": "Alice",
            "group_id": null
        }
        ```
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "message": "Are you free for dinner?",
                "sender_id": "alice",
                "sender_name": "Alice",
                "timestamp": 1718000000000,
                "context": [
                    {"sender_name": "Alice", "content": "Hey!", "timestamp": 1717999990000},
                ],
            }
        }
    )

    message: str = Field(
        ...,
        min_length=1,
        description="The message to generate reply options for",
        examples=["Are you free for dinner?"],
    )
    sender_id: str = Field(..., min_length=1, description="Sender account id")
    sender_name: str = Field(default="", description="Sender display name")
    group_id: str | None = Field(default=None, description="Group chat id, if any")
    timestamp: int = Field(default=0, ge=0, description="Unix epoch milliseconds")
    context: list[ContextMessageModel] | None = Field(
        default=None,
        description="Prior messages, oldest first. Omit to use recorded history.",
    )

    def sender(self) -> SenderInfo:
        return SenderInfo(
            sender_id=self.sender_id,
            sender_name=self.sender_name,
            group_id=self.group_id,
            timestamp=self.timestamp,
        )


class SuggestionResponse(BaseModel):
    """Reply options for a message.

    Example:
        ```json
        {
            "options": ["Sure, what time?", "Can't tonight, sorry!", "Where were you thinking?"],
            "suppressed": false
        }
        ```
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "options": ["Sure, what time?", "Can't tonight, sorry!", "Where were you thinking?"],
                "suppressed": False,
            }
        }
    )

    options: list[str] = Field(..., description="At least three reply options, or none")
    suppressed: bool = Field(
        default=False, description="True when no prompt applies to this sender"
    )


class HistoryMessageRequest(BaseModel):
    """A message to record in a conversation's history."""

    sender_id: str = Field(..., min_length=1, description="Conversation sender id")
    group_id: str | None = Field(default=None, description="Group chat id, if any")
    message: ContextMessageModel


class HistoryResponse(BaseModel):
    """Current history window of a conversation."""

    conversation: str
    messages: list[ContextMessageModel]


class AiLogEntryModel(BaseModel):
    """One AI request log entry."""

    timestamp: str
    level: str
    provider: str
    model: str
    url: str
    message: str


class AiLogResponse(BaseModel):
    """AI request log, oldest entry first."""

    entries: list[AiLogEntryModel]


@router.post(
    "",
    response_model=SuggestionResponse,
    summary="Generate reply options",
    responses={
        429: {"description": "The model endpoint is rate limiting requests"},
        500: {"description": "Endpoint URL or API key not configured"},
        502: {"description": "The model endpoint failed or was unreachable"},
        503: {"description": "The model kept returning unusable output"},
    },
)
async def create_suggestions(
    suggestion_request: SuggestionRequest,
    service: SuggestionService = Depends(get_suggestion_service),
) -> SuggestionResponse:
    """Generate reply options for a message.

    Prompt selection runs first. If every prompt is off for the sender the
    response has no options and ``suppressed`` set.
    """
    message = suggestion_request.message.strip()
    if not message:
        raise ValidationError(
            "Message must not be blank", field="message", code=ErrorCode.VAL_MISSING_REQUIRED
        )

    context = None
    if suggestion_request.context is not None:
        context = [m.to_contract() for m in suggestion_request.context]

    sender = suggestion_request.sender()
    options = await service.suggest(message, sender, context)
    logger.debug("Returning %d options for %s", len(options), sender.conversation_key)
    return SuggestionResponse(options=options, suppressed=not options)


@router.post("/history", response_model=HistoryResponse, summary="Record a conversation message")
async def add_history_message(
    history_request: HistoryMessageRequest,
    service: SuggestionService = Depends(get_suggestion_service),
) -> HistoryResponse:
    """Append a message to a conversation's history window."""
    if service.history is None:
        raise ValidationError("Conversation history is not enabled", field="history")
    key = SenderInfo(
        sender_id=history_request.sender_id, group_id=history_request.group_id
    ).conversation_key
    service.history.add(key, history_request.message.to_contract())
    messages = [
        ContextMessageModel(
            sender_name=m.sender_name, content=m.content, is_self=m.is_self, timestamp=m.timestamp
        )
        for m in service.history.window(key)
    ]
    return HistoryResponse(conversation=key, messages=messages)


@router.get("/log", response_model=AiLogResponse, summary="Read the AI request log")
async def read_log(ai_log: AiLog = Depends(get_request_log)) -> AiLogResponse:
    return AiLogResponse(entries=[AiLogEntryModel(**e.to_dict()) for e in ai_log.entries()])


@router.delete("/log", status_code=204, summary="Clear the AI request log")
async def clear_log(ai_log: AiLog = Depends(get_request_log)) -> Response:
    ai_log.clear()
    return Response(status_code=204)
