from openai import AsyncOpenAI, AsyncStream
from openai.types.chat import ChatCompletionChunk
from pydantic import BaseModel, Field


class OpenAIConfig(BaseModel):
    """Endpoint the assistant output is streamed from."""

    api_key: str = Field(default=None)
    model: str = Field(default=None)
    base_url: str = Field(default=None)
    timeout: float | None = Field(
        default=None, description="Request timeout in seconds, client default if unset"
    )
    max_retries: int = Field(default=2)

    def get_client(self) -> AsyncOpenAI:
        kwargs: dict = {"max_retries": self.max_retries}
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        return AsyncOpenAI(api_key=self.api_key, base_url=self.base_url, **kwargs)

    async def chat(
        self, *, model: str = None, **kwargs
    ) -> AsyncStream[ChatCompletionChunk]:
        return await self.get_client().chat.completions.create(
            **(kwargs | {"model": model or self.model})
        )
