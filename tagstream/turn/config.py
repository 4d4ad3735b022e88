from pydantic import BaseModel, Field

from tagstream.config import OpenAIConfig
from tagstream.turn.entity.vocabulary import TagVocabulary


class TurnAgentConfig(BaseModel):
    openai: OpenAIConfig
    vocabulary: TagVocabulary = Field(default_factory=TagVocabulary)
    max_rounds: int = Field(
        default=16, description="Maximum assistant turns before giving up."
    )
    lang: str = Field(default="English")
    system_prompt_template: str = Field(default="tool_use.j2")
