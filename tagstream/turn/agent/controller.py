from pydantic import BaseModel, Field

from tagstream.common.trace_info import TraceInfo
from tagstream.turn.agent.markers import strip_dangling_tag
from tagstream.turn.agent.stream_parser import parse
from tagstream.turn.entity.block import ContentBlock, TextBlock, ToolInvocationBlock
from tagstream.turn.entity.vocabulary import Vocabulary


class TurnUpdate(BaseModel):
    start: int = Field(description="Turn-wide index of the first completed block")
    completed: list[ContentBlock] = Field(default_factory=list)
    preview: ContentBlock | None = Field(default=None)
    incomplete: ToolInvocationBlock | None = Field(
        default=None,
        description="Tool invocation cut off by the end of the turn, never executed",
    )

    @property
    def preview_index(self) -> int:
        return self.start + len(self.completed)


class TurnController:
    """
    Owns the buffer of one assistant turn and the cursor over parsed blocks.

    Each ``feed`` re-parses the whole buffer, hands out the blocks completed
    since the previous call exactly once, and exposes the trailing partial
    block as a live preview without moving the cursor past it.
    """

    def __init__(self, vocabulary: Vocabulary, trace_info: TraceInfo | None = None):
        self.vocabulary: Vocabulary = vocabulary
        self.trace_info: TraceInfo | None = trace_info
        self.buffer: str = ""
        self.cursor: int = 0

    def reset(self) -> None:
        self.buffer = ""
        self.cursor = 0

    def _advance(self, blocks: list[ContentBlock]) -> TurnUpdate:
        update = TurnUpdate(start=self.cursor)
        for block in blocks[self.cursor :]:
            if not block.complete:
                update.preview = block
                break
            update.completed.append(block)
        self.cursor += len(update.completed)
        if update.completed and self.trace_info:
            self.trace_info.debug(
                {
                    "cursor": self.cursor,
                    "completed": [b.model_dump() for b in update.completed],
                }
            )
        return update

    def feed(self, delta: str) -> TurnUpdate:
        self.buffer += delta
        update: TurnUpdate = self._advance(parse(self.buffer, self.vocabulary))
        if isinstance(update.preview, TextBlock):
            if content := strip_dangling_tag(update.preview.content):
                update.preview = update.preview.model_copy(update={"content": content})
            else:
                update.preview = None
        return update

    def finish(self) -> TurnUpdate:
        update: TurnUpdate = self._advance(parse(self.buffer, self.vocabulary))
        if isinstance(update.preview, TextBlock):
            update.completed.append(
                update.preview.model_copy(update={"complete": True})
            )
            self.cursor += 1
        elif isinstance(update.preview, ToolInvocationBlock):
            update.incomplete = update.preview
            if self.trace_info:
                self.trace_info.warning(
                    {
                        "message": "Tool invocation interrupted by end of turn",
                        "block": update.incomplete.model_dump(),
                    }
                )
        update.preview = None
        return update
