from __future__ import annotations

from uuid import uuid4

from pydantic import BaseModel

from termagent.llms import ToolCallDelta

REPLACEMENT_CHARACTER = "\ufffd"


def _is_high_surrogate(char: str) -> bool:
    return "\ud800" <= char <= "\udbff"


def _is_low_surrogate(char: str) -> bool:
    return "\udc00" <= char <= "\udfff"


def _join_pairs(text: str) -> str:
    # Fuse adjacent surrogate pairs into one code point; stray halves become U+FFFD.
    return text.encode("utf-16-le", "surrogatepass").decode("utf-16-le", errors="replace")


class SurrogateDecoder:
    """Reassemble text deltas that may split a UTF-16 surrogate pair.

    A chunk ending in a high surrogate keeps it pending. The next chunk either
    starts with the matching low surrogate (the pair is joined) or it does not
    (the pending half becomes U+FFFD). ``flush`` at end of stream turns a
    still-pending half into exactly one U+FFFD.
    """

    def __init__(self) -> None:
        self._pending: str | None = None

    def feed(self, chunk: str) -> str:
        if not chunk:
            return ""

        prefix = ""
        if self._pending is not None:
            if _is_low_surrogate(chunk[0]):
                prefix = self._pending + chunk[0]
                chunk = chunk[1:]
            else:
                prefix = REPLACEMENT_CHARACTER
            self._pending = None

        if chunk and _is_high_surrogate(chunk[-1]):
            self._pending = chunk[-1]
            chunk = chunk[:-1]

        return _join_pairs(prefix + chunk)

    def flush(self) -> str:
        if self._pending is None:
            return ""
        self._pending = None
        return REPLACEMENT_CHARACTER


class ToolCallRequest(BaseModel):
    stream_index: int
    id: str
    name: str
    arguments_json: str


class _PartialCall:
    def __init__(self, index: int) -> None:
        self.index = index
        self.id: str | None = None
        self.name: str | None = None
        self.arguments: list[str] = []


class ToolCallAccumulator:
    """Merge streamed tool-call fragments by stream index, in arrival order."""

    def __init__(self) -> None:
        self._calls: dict[int, _PartialCall] = {}

    def __bool__(self) -> bool:
        return bool(self._calls)

    def add(self, delta: ToolCallDelta) -> None:
        call = self._calls.get(delta.index)
        if call is None:
            call = self._calls[delta.index] = _PartialCall(delta.index)
        if delta.id:
            call.id = delta.id
        if delta.name:
            call.name = delta.name
        if delta.arguments_delta:
            call.arguments.append(delta.arguments_delta)

    def requests(self) -> list[ToolCallRequest]:
        return [
            ToolCallRequest(
                stream_index=call.index,
                id=call.id or f"call_{uuid4().hex}",
                name=call.name or "",
                arguments_json="".join(call.arguments),
            )
            for call in self._calls.values()
        ]
