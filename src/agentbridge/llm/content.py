"""Helpers for text and multimodal message content."""

from __future__ import annotations

import json
from dataclasses import replace

from agentbridge.llm.types import Attachment, FilePart, ImagePart, Message, TextPart


def is_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def strip_data_uri(data: str) -> str:
    """Return the base64 payload of a ``data:`` URI, or ``data`` unchanged."""
    if data.startswith("data:"):
        comma = data.find(",")
        if comma != -1:
            return data[comma + 1:]
    return data


def data_uri_media_type(data: str) -> str | None:
    """Return the media type declared by a ``data:`` URI, if any."""
    if not data.startswith("data:"):
        return None
    header = data[5:].split(",", 1)[0]
    media_type = header.split(";", 1)[0]
    return media_type or None


def to_data_uri(data: str, media_type: str) -> str:
    if data.startswith("data:"):
        return data
    return f"data:{media_type};base64,{data}"


def message_text(msg: Message) -> str:
    """Concatenate the text of a message, ignoring non-text parts."""
    if msg.content is None:
        return ""
    if isinstance(msg.content, str):
        return msg.content
    return "".join(p.text for p in msg.content if isinstance(p, TextPart))


def message_media(msg: Message) -> list[Attachment]:
    """Collect every non-text input of a message as attachments.

    Image and file content parts are normalized into the same shape as
    explicit attachments. Inline data is always bare base64; a ``data:``
    URI prefix is stripped and its media type kept.
    """
    media: list[Attachment] = []
    if isinstance(msg.content, list):
        for part in msg.content:
            if isinstance(part, ImagePart):
                media.append(_source_attachment("image", part.image, part.mime_type))
            elif isinstance(part, FilePart):
                attachment = _source_attachment("file", part.data, part.mime_type)
                attachment.filename = part.filename
                media.append(attachment)
    for attachment in msg.attachments or []:
        if attachment.data and attachment.data.startswith("data:"):
            attachment = replace(
                attachment,
                data=strip_data_uri(attachment.data),
                mime_type=attachment.mime_type or data_uri_media_type(attachment.data),
            )
        media.append(attachment)
    return media


def _source_attachment(kind: str, source: str, mime_type: str | None) -> Attachment:
    if is_url(source):
        return Attachment(type=kind, url=source, mime_type=mime_type)
    return Attachment(
        type=kind,
        data=strip_data_uri(source),
        mime_type=mime_type or data_uri_media_type(source),
    )


def attachment_media_type(attachment: Attachment) -> str:
    if attachment.mime_type:
        return attachment.mime_type
    if attachment.data:
        declared = data_uri_media_type(attachment.data)
        if declared:
            return declared
    return {
        "image": "image/png",
        "audio": "audio/mp3",
        "video": "video/mp4",
    }.get(attachment.type, "application/octet-stream")


def is_pdf(attachment: Attachment) -> bool:
    return attachment.type == "file" and attachment_media_type(attachment) == "application/pdf"


def multimodal_tool_content(content: str | None) -> list[dict] | None:
    """Decode a tool message carrying serialized multimodal parts.

    Returns the list of OpenAI-style ``text``/``image_url`` parts, or ``None``
    when ``content`` is ordinary text.
    """
    if not content or not content.startswith("["):
        return None
    try:
        parts = json.loads(content)
    except json.JSONDecodeError:
        return None
    if not isinstance(parts, list) or not parts:
        return None
    if not all(isinstance(p, dict) and p.get("type") in ("text", "image_url") for p in parts):
        return None
    return parts


def tool_result_failure(content: str) -> str | None:
    """Error message of a serialized ``{"success": false, ...}`` tool result.

    Returns ``None`` for successful or non-JSON results.
    """
    try:
        data = json.loads(content)
    except ValueError:
        return None
    if isinstance(data, dict) and data.get("success") is False:
        return str(data.get("error") or "Tool execution failed")
    return None
