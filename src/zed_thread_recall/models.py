"""Pydantic data models for Zed Thread Recall."""

from datetime import datetime
from typing import Any, ClassVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    JsonValue,
    SerializerFunctionWrapHandler,
    model_serializer,
)
from pydantic.alias_generators import to_camel


class ArchiveRecord(BaseModel):
    """One row of Zed's ``threads`` table."""

    model_config = ConfigDict(frozen=True)

    id: str
    summary: str
    updated_at: str
    data_type: str = "zstd"
    data: bytes = b""  # Empty for metadata-only queries


class TaggedModel(BaseModel):
    """
    A union member encoded as a single-key object, ``{"<tag>": payload}``.

    Subclasses set ``tag`` and may override ``encode_tagged`` when their
    payload is not the plain field dict. Decoding goes through
    ``decoder.split_tagged``.
    """

    tag: ClassVar[str]

    @model_serializer(mode="wrap")
    def serialize_tagged(self, handler: SerializerFunctionWrapHandler) -> Any:
        return self.encode_tagged(handler(self))

    def encode_tagged(self, fields: dict[str, Any]) -> Any:
        return {self.tag: fields}


# Content


class TextContent(TaggedModel):
    tag: ClassVar[str] = "Text"

    text: str

    def encode_tagged(self, fields: dict[str, Any]) -> Any:
        return {self.tag: fields["text"]}

    @property
    def searchable_text(self) -> str:
        return self.text


class ToolUseContent(TaggedModel):
    tag: ClassVar[str] = "ToolUse"

    id: str
    name: str
    raw_input: str | None = None
    input: dict[str, JsonValue] | None = None

    @property
    def searchable_text(self) -> str:
        return self.raw_input or ""


class FileRef(BaseModel):
    abs_path: str


class LineRange(BaseModel):
    start: int
    end: int


class SelectionRef(BaseModel):
    abs_path: str
    line_range: LineRange


class MentionUri(BaseModel):
    """Where a mention points. Either reference may be absent."""

    model_config = ConfigDict(populate_by_name=True)

    file: FileRef | None = Field(default=None, alias="File")
    selection: SelectionRef | None = Field(default=None, alias="Selection")


class MentionContent(TaggedModel):
    tag: ClassVar[str] = "Mention"

    uri: MentionUri = Field(default_factory=MentionUri)
    content: str  # Display text

    @property
    def searchable_text(self) -> str:
        return self.content


class OtherContent(TaggedModel):
    """Content item of a kind this model does not know, kept as raw JSON text."""

    tag: ClassVar[str] = "Other"

    text: str

    def encode_tagged(self, fields: dict[str, Any]) -> Any:
        return {self.tag: fields["text"]}

    @property
    def searchable_text(self) -> str:
        return ""


Content = TextContent | ToolUseContent | MentionContent | OtherContent


# Messages


class ContentMessage(TaggedModel):
    """Shared behaviour of messages that carry content."""

    role: ClassVar[str]

    content: list[Content] = Field(default_factory=list)

    @property
    def searchable_text(self) -> str:
        """Concatenation of text, mention display text and raw tool input, in order."""
        return "".join(item.searchable_text for item in self.content)

    @property
    def has_tool_use(self) -> bool:
        return any(isinstance(item, ToolUseContent) for item in self.content)


class UserMessage(ContentMessage):
    tag: ClassVar[str] = "User"
    role: ClassVar[str] = "user"

    id: str


class AgentMessage(ContentMessage):
    tag: ClassVar[str] = "Agent"
    role: ClassVar[str] = "assistant"


class NoopMessage(TaggedModel):
    """Placeholder for unit variants of the message union (e.g. ``"Resume"``)."""

    tag: ClassVar[str] = "Noop"
    role: ClassVar[str] = "noop"

    kind: str

    def encode_tagged(self, fields: dict[str, Any]) -> Any:
        return self.kind

    @property
    def searchable_text(self) -> str:
        return ""

    @property
    def has_tool_use(self) -> bool:
        return False


Message = UserMessage | AgentMessage | NoopMessage


# Thread


class ModelInfo(BaseModel):
    provider: str | None = None
    model: str | None = None


class Thread(BaseModel):
    """A decoded conversation in the current (0.3.0) shape."""

    title: str | None = None
    messages: list[Message] = Field(default_factory=list)
    updated_at: str
    detailed_summary: str | None = None
    model: ModelInfo | None = None
    completion_mode: str | None = None
    profile: str | None = None
    version: str | None = None

    @property
    def user_message_count(self) -> int:
        return sum(1 for m in self.messages if isinstance(m, UserMessage))

    @property
    def agent_message_count(self) -> int:
        return sum(1 for m in self.messages if isinstance(m, AgentMessage))


# Results


class CamelModel(BaseModel):
    """Response model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConsumableThread(CamelModel):
    """A thread as handed to callers: metadata plus an optional decoded body."""

    id: str
    summary: str
    last_update: datetime
    thread: Thread | None = None


class SearchMatch(CamelModel):
    """One substring match inside a thread message."""

    thread_id: str = Field(alias="threadID")
    thread_summary: str
    thread_message_count: int
    message_index: int
    match_position: int  # Character offset in the message's searchable text
    context_before: str
    match_text: str
    context_after: str
    message_role: str


class MessageContent(CamelModel):
    """A character window of one message's searchable text."""

    thread_id: str = Field(alias="threadID")
    thread_summary: str
    message_index: int
    message_id: str | None = Field(default=None, alias="messageID")
    role: str
    content: str
    total_length: int
    returned_length: int
    offset: int
    has_more: bool = False
    next_offset: int | None = None


class ThreadListResponse(CamelModel):
    """Response from zed-list-threads and zed-search-threads."""

    input_request: str
    summary: str | None = None
    result_count: int
    results: list[ConsumableThread] = Field(default_factory=list)


class ThreadDetailResponse(CamelModel):
    """Response from zed-get-thread."""

    input_request: str
    summary: str = "Thread Details"
    range_start: int
    range_end: int
    matching_message_count: int | None = None
    thread: ConsumableThread


class MessageResponse(CamelModel):
    """Response from zed-get-message."""

    input_request: str
    summary: str = "Message Content"
    message: MessageContent


class ContentSearchResponse(CamelModel):
    """Response from zed-search-thread-content."""

    input_request: str
    summary: str = "Thread Content Search Results"
    query: str
    page: int
    page_size: int
    result_count: int
    total_matches: int
    total_pages: int
    has_more: bool = False
    skipped_threads: int = 0
    results: list[SearchMatch] = Field(default_factory=list)
    hint: str = ""
