"""Decode Zed thread documents, migrating the legacy 0.2.0 schema on read."""

import hashlib
import json
import logging
import uuid
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, Field, JsonValue
from pydantic import ValidationError as PydanticValidationError

from .config import CURRENT_SCHEMA_VERSION
from .decompress import decode_record_data
from .errors import (
    DecodeError,
    DecompressionError,
    MalformedDocumentError,
    UnrecognizedMessageTagError,
)
from .models import (
    AgentMessage,
    ArchiveRecord,
    Content,
    FileRef,
    LineRange,
    MentionContent,
    MentionUri,
    Message,
    ModelInfo,
    NoopMessage,
    OtherContent,
    SelectionRef,
    TextContent,
    Thread,
    ToolUseContent,
    UserMessage,
)

logger = logging.getLogger(__name__)

# Namespace for identifiers minted for migrated legacy user messages
LEGACY_MESSAGE_NAMESPACE = uuid.UUID("6f1c2a8e-3d4b-5e6f-8a9b-0c1d2e3f4a5b")


class UnknownTagError(KeyError):
    """A tagged object carries no tag the caller knows how to decode."""


def split_tagged(value: Any) -> tuple[str, Any]:
    """Split a single-key object ``{"Tag": payload}`` into ``(tag, payload)``."""
    if not isinstance(value, dict) or len(value) != 1:
        keys = sorted(value) if isinstance(value, dict) else []
        raise UnknownTagError(keys)
    ((tag, payload),) = value.items()
    return tag, payload


def decode_tagged(value: Any, decoders: Mapping[str, Callable[[Any], Any]]) -> Any:
    """Dispatch a single-key object to the decoder registered for its tag."""
    tag, payload = split_tagged(value)
    decoder = decoders.get(tag)
    if decoder is None:
        raise UnknownTagError([tag])
    return decoder(payload)


# Legacy 0.2.0 document shape


class LegacySegment(BaseModel):
    type: str = "unknown"
    text: str | None = None


class LegacyToolUse(BaseModel):
    id: str
    name: str
    input: dict[str, JsonValue] = Field(default_factory=dict)


class LegacyMessage(BaseModel):
    """A 0.2.0 message: flat ``role`` field, text split into segments."""

    id: int | str | None = None
    role: str
    segments: list[LegacySegment] = Field(default_factory=list)
    tool_uses: list[LegacyToolUse] = Field(default_factory=list)
    tool_results: list[JsonValue] = Field(default_factory=list)
    context: str | None = None
    is_hidden: bool | None = None


def migrate_legacy_message(legacy: LegacyMessage, message_id: str) -> Message:
    """
    Convert a 0.2.0 message into the 0.3.0 model.

    Segments with text come first, in order, followed by one ToolUse per tool
    use. Tool results have no place in the current content union and are
    dropped.
    """
    content: list[Content] = [
        TextContent(text=segment.text) for segment in legacy.segments if segment.text is not None
    ]
    content.extend(
        ToolUseContent(id=tool_use.id, name=tool_use.name, raw_input=None, input=tool_use.input)
        for tool_use in legacy.tool_uses
    )

    if legacy.role == "user":
        return UserMessage(id=message_id, content=content)
    if legacy.role == "assistant":
        return AgentMessage(content=content)
    raise MalformedDocumentError(f"Unknown legacy message role: {legacy.role!r}")


def _legacy_message_id(document_digest: str, position: int) -> str:
    """Mint a stable identifier for a migrated user message."""
    return str(uuid.uuid5(LEGACY_MESSAGE_NAMESPACE, f"{document_digest}:{position}"))


# Current 0.3.0 document shape


def _decode_tool_use(payload: Any) -> ToolUseContent:
    return ToolUseContent(
        id=payload["id"],
        name=payload["name"],
        raw_input=payload.get("raw_input"),
        input=payload.get("input"),
    )


def _decode_mention(payload: Any) -> MentionContent:
    uri = payload.get("uri") or {}
    file_ref = uri.get("File")
    selection = uri.get("Selection")
    return MentionContent(
        uri=MentionUri(
            file=FileRef(abs_path=file_ref["abs_path"]) if file_ref else None,
            selection=(
                SelectionRef(
                    abs_path=selection["abs_path"],
                    line_range=LineRange(
                        start=selection["line_range"]["start"],
                        end=selection["line_range"]["end"],
                    ),
                )
                if selection
                else None
            ),
        ),
        content=payload["content"],
    )


def _decode_text(payload: Any) -> TextContent:
    return TextContent(text=payload)


CONTENT_DECODERS: dict[str, Callable[[Any], Content]] = {
    "Text": _decode_text,
    "ToolUse": _decode_tool_use,
    "Mention": _decode_mention,
}


def decode_content(item: Any) -> Content:
    """Decode one content item; anything unrecognized or broken becomes Other."""
    try:
        return decode_tagged(item, CONTENT_DECODERS)
    except (KeyError, TypeError, AttributeError, PydanticValidationError):
        return OtherContent(text=json.dumps(item, sort_keys=True, ensure_ascii=False))


def _decode_content_list(payload: Any) -> list[Content]:
    items = payload.get("content", [])
    if not isinstance(items, list):
        raise MalformedDocumentError("Message content must be a list")
    return [decode_content(item) for item in items]


def _decode_user(payload: Any) -> UserMessage:
    if not isinstance(payload, dict) or not isinstance(payload.get("id"), str):
        raise MalformedDocumentError("User message requires a string 'id'")
    return UserMessage(id=payload["id"], content=_decode_content_list(payload))


def _decode_agent(payload: Any) -> AgentMessage:
    if not isinstance(payload, dict):
        raise MalformedDocumentError("Agent message must be an object")
    return AgentMessage(content=_decode_content_list(payload))


MESSAGE_DECODERS: dict[str, Callable[[Any], Message]] = {
    "User": _decode_user,
    "Agent": _decode_agent,
}


def decode_message(item: Any) -> Message:
    """Decode one 0.3.0 message."""
    if isinstance(item, str):
        return NoopMessage(kind=item)
    try:
        return decode_tagged(item, MESSAGE_DECODERS)
    except UnknownTagError as e:
        raise UnrecognizedMessageTagError(list(e.args[0])) from e


# Documents


def is_legacy_document(messages: list[Any]) -> bool:
    """A flat ``role`` field on any message marks the 0.2.0 shape."""
    return any(isinstance(m, dict) and "role" in m for m in messages)


def _optional_str(document: dict, key: str) -> str | None:
    value = document.get(key)
    if value is not None and not isinstance(value, str):
        raise MalformedDocumentError(f"Field '{key}' must be a string")
    return value


def _decode_model_info(value: Any) -> ModelInfo | None:
    if value is None:
        return None
    try:
        return ModelInfo.model_validate(value)
    except PydanticValidationError as e:
        raise MalformedDocumentError(f"Invalid model info: {e}") from e


def decode_thread(raw: bytes) -> Thread:
    """
    Decode a thread document.

    Args:
        raw: Decompressed JSON bytes

    Returns:
        The thread in the current schema

    Raises:
        MalformedDocumentError: Invalid JSON or missing/mistyped required fields
        UnrecognizedMessageTagError: A 0.3.0 message is neither User nor Agent
    """
    try:
        document = json.loads(raw)
    except (ValueError, RecursionError) as e:
        # ValueError covers undecodable bytes and integers too long to convert
        raise MalformedDocumentError(f"Invalid thread JSON: {e}") from e

    if not isinstance(document, dict):
        raise MalformedDocumentError("Thread document must be a JSON object")

    raw_messages = document.get("messages")
    if not isinstance(raw_messages, list):
        raise MalformedDocumentError("Thread document requires a 'messages' list")
    updated_at = document.get("updated_at")
    if not isinstance(updated_at, str):
        raise MalformedDocumentError("Thread document requires a string 'updated_at'")

    if is_legacy_document(raw_messages):
        digest = hashlib.sha256(raw).hexdigest()
        messages = []
        for position, item in enumerate(raw_messages):
            try:
                legacy = LegacyMessage.model_validate(item)
            except PydanticValidationError as e:
                raise MalformedDocumentError(f"Invalid legacy message at {position}: {e}") from e
            messages.append(migrate_legacy_message(legacy, _legacy_message_id(digest, position)))
        title = _optional_str(document, "summary")
        version = CURRENT_SCHEMA_VERSION
    else:
        messages = [decode_message(item) for item in raw_messages]
        title = _optional_str(document, "title")
        version = _optional_str(document, "version")

    return Thread(
        title=title,
        messages=messages,
        updated_at=updated_at,
        detailed_summary=_optional_str(document, "detailed_summary"),
        model=_decode_model_info(document.get("model")),
        completion_mode=_optional_str(document, "completion_mode"),
        profile=_optional_str(document, "profile"),
        version=version,
    )


def load_thread(record: ArchiveRecord) -> Thread | None:
    """Decompress and decode a record, or return None when its content is unusable."""
    try:
        return decode_thread(decode_record_data(record))
    except (DecompressionError, DecodeError) as e:
        logger.warning(f"Skipping content of thread {record.id}: {e}")
        return None
