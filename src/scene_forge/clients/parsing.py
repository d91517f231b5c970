"""Classification of raw generate-content responses.

A response is mapped to exactly one named outcome instead of being probed
for a missing image: ``ImagePayload``, ``TextOnly``, ``EmptyResponse`` or
``BlockedResponse``.
"""

import base64
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from ..errors import BlockedError, MalformedResponseError

NORMAL_FINISH_REASONS = {"STOP", "FINISH_REASON_UNSPECIFIED"}


class ImagePayload(BaseModel):
    kind: Literal["image"] = "image"
    data: str = Field(..., description="Base64-encoded image bytes")
    mime_type: str = "image/png"


class TextOnly(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class EmptyResponse(BaseModel):
    kind: Literal["empty"] = "empty"


class BlockedResponse(BaseModel):
    kind: Literal["blocked"] = "blocked"
    reason: str


ResponseOutcome = Annotated[
    Union[ImagePayload, TextOnly, EmptyResponse, BlockedResponse],
    Field(discriminator="kind"),
]


def _enum_name(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


def _encode(data: Any) -> str:
    if isinstance(data, str):
        return data
    return base64.b64encode(data).decode("utf-8")


def classify_response(response: Any) -> ResponseOutcome:
    """Map a provider response to a single outcome.

    Args:
        response: A ``GenerateContentResponse`` (or anything shaped like one)

    Returns:
        The outcome for the first candidate
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        feedback = getattr(response, "prompt_feedback", None)
        reason = _enum_name(getattr(feedback, "block_reason", None))
        return BlockedResponse(reason=reason or "NO_CANDIDATES")

    candidate = candidates[0]
    finish_reason = _enum_name(getattr(candidate, "finish_reason", None))
    if finish_reason and finish_reason not in NORMAL_FINISH_REASONS:
        return BlockedResponse(reason=finish_reason)

    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) or []

    texts = []
    for part in parts:
        inline_data = getattr(part, "inline_data", None)
        if inline_data is not None and getattr(inline_data, "data", None):
            return ImagePayload(
                data=_encode(inline_data.data),
                mime_type=getattr(inline_data, "mime_type", None) or "image/png",
            )
        text = getattr(part, "text", None)
        if text:
            texts.append(text)

    if texts:
        return TextOnly(text="".join(texts))

    return EmptyResponse()


def ensure_image(outcome: ResponseOutcome) -> ImagePayload:
    """Return the image payload or raise the error matching the outcome."""
    if isinstance(outcome, ImagePayload):
        return outcome
    if isinstance(outcome, BlockedResponse):
        raise BlockedError(outcome.reason)
    if isinstance(outcome, TextOnly):
        raise MalformedResponseError(
            f'Model returned text instead of image: "{outcome.text}"', text=outcome.text
        )
    raise MalformedResponseError("No image data found in response.")


def extract_text(response: Any) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ""
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    return "".join(
        part.text
        for part in parts
        if getattr(part, "text", None) and not getattr(part, "thought", False)
    )
