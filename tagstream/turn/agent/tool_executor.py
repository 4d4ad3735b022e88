import json as jsonlib
from typing import AsyncIterable, Awaitable, Callable, TypedDict

from opentelemetry import trace
from pydantic import BaseModel

from tagstream.common.exception import CommonException
from tagstream.common.trace_info import TraceInfo
from tagstream.common.utils import model_dump
from tagstream.turn.entity.api import (
    ChatBaseResponse,
    ChatBOSResponse,
    ChatDeltaResponse,
    ChatEOSResponse,
    MessageDto,
    ToolInvocation,
)
from tagstream.turn.entity.vocabulary import TagVocabulary, ToolTag

tracer = trace.get_tracer(__name__)

ToolFunction = Callable[..., Awaitable[object]]


class ToolExecutorConfig(TypedDict):
    name: str
    func: ToolFunction
    tag: ToolTag


def stringify_result(result: object) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json(exclude_none=True)
    return jsonlib.dumps(model_dump(result), ensure_ascii=False, separators=(",", ":"))


def result_wrapper(tool_invocation_id: str, name: str, content: str) -> MessageDto:
    return MessageDto.model_validate(
        {
            "message": {"role": "user", "content": f"[{name}] Result:\n{content}"},
            "attrs": {"tool_invocation_id": tool_invocation_id},
        }
    )


def missing_parameters(invocation: ToolInvocation, tag: ToolTag) -> list[str]:
    return [
        p for p in tag.required if not invocation.block.parameters.get(p, "").strip()
    ]


class ToolExecutor:
    def __init__(self, config: dict[str, ToolExecutorConfig]):
        self.config: dict[str, ToolExecutorConfig] = config
        self.vocabulary: TagVocabulary = TagVocabulary(
            tags=[tool_config["tag"] for tool_config in config.values()]
        )

    async def execute(
        self, invocation: ToolInvocation, trace_info: TraceInfo
    ) -> MessageDto:
        block = invocation.block
        logger = trace_info.get_child(
            addition_payload={
                "tool_invocation_id": invocation.id,
                "tool_name": block.name,
                "parameters": block.parameters,
            }
        )
        if not block.complete:
            logger.warning({"message": "Refusing to execute a partial invocation"})
            return result_wrapper(
                invocation.id,
                block.name,
                "Error: the tool invocation was cut off before its closing tag. "
                "Please retry with the complete invocation.",
            )
        if block.name not in self.config:
            logger.error({"message": "Unknown tool"})
            raise ValueError(f"Unknown tool: {block.name}")

        tool_config: ToolExecutorConfig = self.config[block.name]
        if missing := missing_parameters(invocation, tool_config["tag"]):
            logger.warning({"message": "Missing required parameters", "missing": missing})
            return result_wrapper(
                invocation.id,
                block.name,
                f"Error: missing value for required parameter(s) {', '.join(missing)}. "
                "Please retry with complete parameters.",
            )

        with tracer.start_as_current_span(
            f"tool_executor.execute.{block.name}"
        ) as func_span:
            func_span.set_attributes(
                {
                    "tool_invocation_id": invocation.id,
                    "tool_name": block.name,
                    "parameters": jsonlib.dumps(
                        block.parameters, ensure_ascii=False, separators=(",", ":")
                    ),
                }
            )
            try:
                result = await tool_config["func"](**block.parameters)
            except Exception as e:
                logger.error({"error": CommonException.parse_exception(e)})
                raise
            logger.info({"result": model_dump(result)})
        return result_wrapper(invocation.id, block.name, stringify_result(result))

    async def astream(
        self,
        message_dtos: list[MessageDto],
        trace_info: TraceInfo,
    ) -> AsyncIterable[ChatBaseResponse | MessageDto]:
        with tracer.start_as_current_span("tool_executor.astream"):
            attrs = message_dtos[-1].attrs
            for invocation in (attrs and attrs.tool_invocations) or []:
                yield ChatBOSResponse(role="tool")
                message_dto: MessageDto = await self.execute(invocation, trace_info)
                yield ChatDeltaResponse.model_validate(
                    message_dto.model_dump(exclude_none=True)
                )
                yield message_dto
                yield ChatEOSResponse()
