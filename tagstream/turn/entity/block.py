from typing import Annotated, Literal

from pydantic import BaseModel, Field


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    content: str
    complete: bool = Field(
        default=False, description="False while more buffer data may extend it"
    )


class ToolInvocationBlock(BaseModel):
    type: Literal["tool_invocation"] = "tool_invocation"
    name: str = Field(description="Block name, drawn from the tag vocabulary")
    parameters: dict[str, str] = Field(default_factory=dict)
    complete: bool = Field(
        default=False, description="True once the closing marker was observed"
    )


ContentBlock = Annotated[TextBlock | ToolInvocationBlock, Field(discriminator="type")]
