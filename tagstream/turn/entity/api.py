from typing import Literal, TypeVar

from pydantic import BaseModel, Field

from tagstream.turn.entity.block import ContentBlock, ToolInvocationBlock


class BaseChatRequest(BaseModel):
    query: str


class ChatRequestOptions(BaseModel):
    tools: list[str] | None = Field(
        default=None,
        description="Names of the enabled tools, all registered tools if omitted.",
    )
    lang: Literal["简体中文", "English"] | None = Field(
        default=None, description="Language of the response."
    )


class ToolInvocation(BaseModel):
    id: str
    block: ToolInvocationBlock


class MessageAttrs(BaseModel):
    tool_invocations: list[ToolInvocation] | None = Field(default=None)
    tool_invocation_id: str | None = Field(
        default=None, description="Set on messages carrying a tool result."
    )


class MessageDto(BaseModel):
    message: dict
    attrs: MessageAttrs | None = Field(default=None)


class AgentRequest(BaseChatRequest, ChatRequestOptions):
    conversation_id: str
    messages: list[MessageDto] | None = Field(default=None)


class ChatBaseResponse(BaseModel):
    response_type: Literal["bos", "delta", "preview", "block", "eos", "error", "done"]


class ChatBOSResponse(ChatBaseResponse):
    response_type: Literal["bos"] = "bos"
    role: Literal["system", "user", "assistant", "tool"]


class ChatEOSResponse(ChatBaseResponse):
    response_type: Literal["eos"] = "eos"


class DeltaOpenAIMessage(BaseModel):
    role: str | None = Field(default=None)
    content: str | None = Field(default=None)


class ChatDeltaResponse(ChatBaseResponse):
    response_type: Literal["delta"] = "delta"
    message: DeltaOpenAIMessage
    attrs: MessageAttrs | None = Field(
        default=None, description="Attributes of the message."
    )


class ChatPreviewResponse(ChatBaseResponse):
    """Trailing block that may still change; render it, never execute it."""

    response_type: Literal["preview"] = "preview"
    index: int = Field(description="Position of the block within the turn")
    block: ContentBlock


class ChatBlockResponse(ChatBaseResponse):
    response_type: Literal["block"] = "block"
    index: int = Field(description="Position of the block within the turn")
    block: ContentBlock
    tool_invocation_id: str | None = Field(default=None)


class ChatErrorResponse(ChatBaseResponse):
    response_type: Literal["error"] = "error"
    message: str


ChatResponse = TypeVar("ChatResponse", bound=ChatBaseResponse)
