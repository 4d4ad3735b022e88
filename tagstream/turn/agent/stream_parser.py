from dataclasses import dataclass, replace
from enum import StrEnum

from tagstream.turn.agent.markers import (
    closing_marker,
    ends_with,
    greedy_value,
    marker_ends,
    match_named_opening,
    match_opening,
    opening_marker,
    strip_partial_marker,
)
from tagstream.turn.entity.block import ContentBlock, TextBlock, ToolInvocationBlock
from tagstream.turn.entity.vocabulary import Vocabulary


class ScanMode(StrEnum):
    FREE_TEXT = "free_text"
    IN_BLOCK = "in_block"
    IN_PARAMETER = "in_parameter"


@dataclass(frozen=True)
class ScanState:
    mode: ScanMode = ScanMode.FREE_TEXT
    text_start: int = 0

    block: ToolInvocationBlock | None = None
    body_start: int = 0  # block-level markers are matched from here on
    verbatim: str | None = None
    verbatim_start: int = -1  # value start of the first verbatim opening marker

    param: str | None = None
    param_start: int = 0


def _verbatim_parameter(vocabulary: Vocabulary, block_name: str) -> str | None:
    for param in vocabulary.parameters_of(block_name):
        if vocabulary.is_verbatim(block_name, param):
            return param
    return None


def _with_parameter(
    block: ToolInvocationBlock, name: str, value: str
) -> ToolInvocationBlock:
    return block.model_copy(update={"parameters": block.parameters | {name: value}})


def _scan_free_text(
    buffer: str,
    end: int,
    state: ScanState,
    vocabulary: Vocabulary,
    blocks: list[ContentBlock],
) -> ScanState:
    name: str | None = match_opening(
        buffer, end, state.text_start, vocabulary.is_block_name
    )
    if name is None:
        return state
    marker_start: int = end - len(opening_marker(name))
    if content := buffer[state.text_start : marker_start].strip():
        blocks.append(TextBlock(content=content, complete=True))
    return ScanState(
        mode=ScanMode.IN_BLOCK,
        block=ToolInvocationBlock(name=name),
        body_start=end,
        verbatim=_verbatim_parameter(vocabulary, name),
    )


def _scan_block(
    buffer: str,
    end: int,
    state: ScanState,
    vocabulary: Vocabulary,
    blocks: list[ContentBlock],
) -> ScanState:
    block: ToolInvocationBlock = state.block
    if ends_with(buffer, closing_marker(block.name), state.body_start, end):
        blocks.append(block.model_copy(update={"complete": True}))
        return ScanState(text_start=end)

    # A verbatim value may contain its own closing marker: widen it to the last one.
    if (
        state.verbatim in block.parameters
        and ends_with(buffer, closing_marker(state.verbatim), state.body_start, end)
    ):
        value: str = greedy_value(
            buffer, state.verbatim_start, closing_marker(state.verbatim), end
        )
        return replace(
            state, block=_with_parameter(block, state.verbatim, value), body_start=end
        )

    param: str | None = match_named_opening(
        buffer, end, state.body_start, vocabulary.parameters_of(block.name)
    )
    if param is None:
        return state
    verbatim_start: int = state.verbatim_start
    if param == state.verbatim and verbatim_start < 0:
        verbatim_start = end
    return replace(
        state,
        mode=ScanMode.IN_PARAMETER,
        param=param,
        param_start=end,
        verbatim_start=verbatim_start,
    )


def _scan_parameter(buffer: str, end: int, state: ScanState) -> ScanState:
    close: str = closing_marker(state.param)
    if not ends_with(buffer, close, state.param_start, end):
        return state
    if state.param == state.verbatim:
        value: str = greedy_value(buffer, state.verbatim_start, close, end)
    else:
        value: str = buffer[state.param_start : end - len(close)].strip()
    return replace(
        state,
        mode=ScanMode.IN_BLOCK,
        block=_with_parameter(state.block, state.param, value),
        param=None,
        body_start=end,
    )


def _flush(buffer: str, state: ScanState, blocks: list[ContentBlock]) -> None:
    if state.mode == ScanMode.FREE_TEXT:
        # Free text has no closing marker, so a trailing span is always partial.
        if content := buffer[state.text_start :].strip():
            blocks.append(TextBlock(content=content, complete=False))
        return

    block: ToolInvocationBlock = state.block
    if state.mode == ScanMode.IN_PARAMETER:
        value_start: int = (
            state.verbatim_start if state.param == state.verbatim else state.param_start
        )
        block = _with_parameter(
            block,
            state.param,
            strip_partial_marker(
                buffer[value_start:], closing_marker(state.param)
            ).strip(),
        )
    blocks.append(block)


def parse(buffer: str, vocabulary: Vocabulary) -> list[ContentBlock]:
    """
    Split the whole assistant output received so far into content blocks.

    The result is recomputed from scratch on every call, so it only depends on
    ``buffer``. Every block but the last one is complete; the last one is
    complete only if it is a tool invocation whose closing marker was seen.
    Completed blocks of a prefix of ``buffer`` are a prefix of the completed
    blocks of ``buffer``.
    """
    blocks: list[ContentBlock] = []
    state: ScanState = ScanState()
    for end in marker_ends(buffer):
        if state.mode == ScanMode.IN_PARAMETER:
            state = _scan_parameter(buffer, end, state)
        elif state.mode == ScanMode.IN_BLOCK:
            state = _scan_block(buffer, end, state, vocabulary, blocks)
        else:
            state = _scan_free_text(buffer, end, state, vocabulary, blocks)
    _flush(buffer, state, blocks)
    return blocks


class StreamParser:
    """Vocabulary-bound shortcut for :func:`parse`."""

    def __init__(self, vocabulary: Vocabulary):
        self.vocabulary: Vocabulary = vocabulary

    def parse(self, buffer: str) -> list[ContentBlock]:
        return parse(buffer, self.vocabulary)
