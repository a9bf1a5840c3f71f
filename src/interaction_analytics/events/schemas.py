"""Wire schemas for ingested events.

Events arrive as camelCase JSON objects tagged by ``type``. Models accept
both the camelCase wire names and the snake_case attribute names.
"""

from typing import Annotated, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class EventModel(BaseModel):
    """Base for all ingested events."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=False,
    )

    def to_wire(self) -> dict:
        """Serialize with camelCase keys, as received on the wire."""
        return self.model_dump(by_alias=True, mode="json")


class QueryEvent(EventModel):
    """A user query received by the assistant."""

    type: Literal["query"] = "query"
    id: str | None = Field(default=None, max_length=64)
    store_id: str = Field(..., min_length=1, max_length=128)
    session_id: str | None = None
    user_id: str | None = None
    created_at: int | None = Field(default=None, ge=0, description="Epoch milliseconds")
    query_text: str
    transcription_confidence: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices(
            "transcriptionConfidence", "transcriptionConf", "transcription_confidence"
        ),
        serialization_alias="transcriptionConfidence",
    )
    intent: str | None = None
    fast_path: bool = False
    correlation_id: str | None = None


class OutcomeEvent(EventModel):
    """The recorded result of answering a query."""

    type: Literal["outcome"] = "outcome"
    query_id: str = Field(..., min_length=1, max_length=64)
    answer_text: str | None = None
    model_name: str | None = None
    latency_ms: int = Field(..., ge=0)
    tokens_prompt: int | None = Field(default=None, ge=0)
    tokens_completion: int | None = Field(default=None, ge=0)
    cost_usd: float | None = Field(default=None, ge=0.0)
    action_taken: str | None = None
    action_success: bool = False
    error_flag: bool = False
    tool_calls: str | None = None  # Serialized JSON list

    @property
    def failed(self) -> bool:
        """Whether this outcome counts as a failed query."""
        return self.error_flag or not self.action_success


class LLMCallEvent(EventModel):
    """Audit record of a single model API call."""

    type: Literal["llm_call"] = "llm_call"
    call_id: str | None = Field(default=None, max_length=64)
    query_id: str | None = None
    customer_id: str | None = None
    session_id: str | None = None
    timestamp: int | None = Field(default=None, ge=0, description="Epoch milliseconds")
    model_name: str = Field(..., min_length=1)
    provider: str = Field(..., min_length=1)
    prompt_text: str = ""
    completion_text: str | None = None
    tokens_prompt: int = Field(default=0, ge=0)
    tokens_completion: int = Field(default=0, ge=0)
    latency_ms: int = Field(..., ge=0)
    cost_usd: float | None = Field(default=None, ge=0.0)
    temperature: float | None = None
    max_tokens: int | None = Field(default=None, ge=0)
    system_prompt: str | None = None
    error_message: str | None = None
    request_metadata: str | None = None  # Serialized JSON object

    @property
    def total_tokens(self) -> int:
        """Prompt plus completion tokens."""
        return self.tokens_prompt + self.tokens_completion


IngestEvent = Annotated[
    Union[QueryEvent, OutcomeEvent, LLMCallEvent],
    Field(discriminator="type"),
]

ingest_event_adapter: TypeAdapter[IngestEvent] = TypeAdapter(IngestEvent)

EVENT_TYPES = ("query", "outcome", "llm_call")
