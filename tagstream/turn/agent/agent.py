import json as jsonlib
import time
from functools import partial
from typing import AsyncIterable, Iterable

import shortuuid
from openai import AsyncStream
from openai.types.chat import ChatCompletionChunk
from opentelemetry import propagate, trace

from tagstream.common import project_root
from tagstream.common.template_parser import TemplateParser
from tagstream.common.trace_info import TraceInfo
from tagstream.turn.agent.controller import TurnController, TurnUpdate
from tagstream.turn.agent.tool_executor import (
    ToolExecutor,
    ToolExecutorConfig,
    ToolFunction,
)
from tagstream.turn.config import TurnAgentConfig
from tagstream.turn.entity.api import (
    AgentRequest,
    ChatBaseResponse,
    ChatBlockResponse,
    ChatBOSResponse,
    ChatDeltaResponse,
    ChatEOSResponse,
    ChatErrorResponse,
    ChatPreviewResponse,
    ChatRequestOptions,
    ChatResponse,
    MessageDto,
    ToolInvocation,
)
from tagstream.turn.entity.block import ToolInvocationBlock
from tagstream.turn.entity.vocabulary import TagVocabulary, ToolTag

json_dumps = partial(jsonlib.dumps, ensure_ascii=False, separators=(",", ":"))
tracer = trace.get_tracer(__name__)


class Agent:
    def __init__(self, config: TurnAgentConfig, handlers: dict[str, ToolFunction]):
        self.openai = config.openai
        self.vocabulary: TagVocabulary = config.vocabulary
        self.max_rounds: int = config.max_rounds
        self.lang: str = config.lang
        self.handlers: dict[str, ToolFunction] = handlers

        self.template_parser = TemplateParser(
            base_dir=project_root.path("resources/prompt_templates")
        )
        self.system_prompt_template = self.template_parser.get_template(
            config.system_prompt_template
        )

    def get_tool_executor(self, options: ChatRequestOptions) -> ToolExecutor:
        tags: list[ToolTag] = []
        for name in (
            options.tools if options.tools is not None else self.vocabulary.block_names
        ):
            if (tag := self.vocabulary.get(name)) is None:
                raise ValueError(f"Unknown tool: {name}")
            if name not in self.handlers:
                raise ValueError(f"No handler registered for tool: {name}")
            tags.append(tag)

        tool_executor_config: dict[str, ToolExecutorConfig] = {
            tag.name: ToolExecutorConfig(
                name=tag.name, func=self.handlers[tag.name], tag=tag
            )
            for tag in tags
        }
        return ToolExecutor(tool_executor_config)

    def render_system_prompt(self, vocabulary: TagVocabulary, lang: str | None) -> str:
        return self.template_parser.render_template(
            self.system_prompt_template,
            tags=vocabulary.tags,
            lang=lang or self.lang,
        )

    @classmethod
    def yield_complete_message(
        cls, message: dict, attrs: dict | None = None
    ) -> Iterable[ChatResponse]:
        yield ChatBOSResponse.model_validate({"role": message["role"]})
        yield ChatDeltaResponse.model_validate(
            {"message": message} | ({"attrs": attrs} if attrs else {})
        )
        yield ChatEOSResponse()

    @classmethod
    def dispatch(
        cls, update: TurnUpdate, tool_invocations: list[ToolInvocation]
    ) -> Iterable[ChatResponse]:
        for index, block in enumerate(update.completed, start=update.start):
            tool_invocation_id: str | None = None
            if isinstance(block, ToolInvocationBlock):
                tool_invocation_id = shortuuid.uuid()
                tool_invocations.append(
                    ToolInvocation(id=tool_invocation_id, block=block)
                )
            yield ChatBlockResponse(
                index=index, block=block, tool_invocation_id=tool_invocation_id
            )
        if update.preview is not None:
            yield ChatPreviewResponse(index=update.preview_index, block=update.preview)
        if update.incomplete is not None:
            # Handed to the executor, which reports it back instead of running it.
            tool_invocations.append(
                ToolInvocation(id=shortuuid.uuid(), block=update.incomplete)
            )
            yield ChatErrorResponse(
                message=f"Tool invocation <{update.incomplete.name}> "
                "ended before its closing tag."
            )

    async def chat(
        self,
        messages: list[dict[str, str]],
        vocabulary: TagVocabulary,
        *,
        trace_info: TraceInfo | None = None,
    ) -> AsyncIterable[ChatResponse | MessageDto]:
        with tracer.start_as_current_span("agent.chat") as span:
            if trace_info:
                trace_info.debug(
                    {"messages": messages, "tools": vocabulary.block_names}
                )
            controller = TurnController(
                vocabulary,
                trace_info=trace_info.get_child("controller") if trace_info else None,
            )
            tool_invocations: list[ToolInvocation] = []

            with tracer.start_as_current_span("agent.chat.openai") as openai_span:
                start_time: float = time.time()
                ttft: float = -1.0

                headers = {}
                propagate.inject(headers)
                if trace_info:
                    headers = headers | {"X-Request-Id": trace_info.request_id}

                openai_response: AsyncStream[
                    ChatCompletionChunk
                ] = await self.openai.chat(
                    messages=messages,
                    stream=True,
                    extra_headers=headers if headers else None,
                )

                yield ChatBOSResponse(role="assistant")
                async for chunk in openai_response:
                    if not chunk.choices:
                        continue
                    if ttft < 0:
                        ttft = time.time() - start_time
                        openai_span.set_attribute("ttft", ttft)
                    if delta := chunk.choices[0].delta.content:
                        for r in self.dispatch(controller.feed(delta), tool_invocations):
                            yield r

            for r in self.dispatch(controller.finish(), tool_invocations):
                yield r
            yield ChatEOSResponse()

            assistant_message: dict = {"role": "assistant", "content": controller.buffer}
            span.set_attributes(
                {
                    "model": self.openai.model or "",
                    "assistant_message": json_dumps(assistant_message),
                    "tool_invocations": len(tool_invocations),
                }
            )
            yield MessageDto.model_validate(
                {
                    "message": assistant_message,
                    "attrs": {
                        "tool_invocations": [
                            i.model_dump() for i in tool_invocations
                        ]
                    }
                    if tool_invocations
                    else None,
                }
            )

    async def astream(
        self, trace_info: TraceInfo, agent_request: AgentRequest
    ) -> AsyncIterable[ChatResponse]:
        """
        Process the agent request and yield responses as they are generated.

        1. Build the tool executor for the tools enabled by the request.
        2. Prepend the system prompt describing the tool markup if the conversation is new.
        3. Append the user query.
        4. Chat until the assistant answers without invoking a tool, running the
           completed tool invocations after each assistant message.

        :param trace_info: Trace information for logging and debugging.
        :param agent_request: The request containing the user's query and tools to be used.
        :return: An async iterable of ChatResponse objects.
        """
        with tracer.start_as_current_span("agent.astream") as span:
            span.set_attributes(
                {
                    "conversation_id": agent_request.conversation_id,
                    "agent_request": json_dumps(
                        agent_request.model_dump(
                            exclude_none=True, exclude={"conversation_id"}
                        )
                    ),
                }
            )
            trace_info.info({"request": agent_request.model_dump(exclude_none=True)})

            tool_executor = self.get_tool_executor(agent_request)
            messages: list[MessageDto] = agent_request.messages or []

            if not messages:
                system_message: dict = {
                    "role": "system",
                    "content": self.render_system_prompt(
                        tool_executor.vocabulary, agent_request.lang
                    ),
                }
                for r in self.yield_complete_message(system_message):
                    yield r
                messages.append(MessageDto.model_validate({"message": system_message}))
            if messages[-1].message["role"] != "user":
                user_message: dict = {"role": "user", "content": agent_request.query}
                for r in self.yield_complete_message(user_message):
                    yield r
                messages.append(MessageDto.model_validate({"message": user_message}))

            for _ in range(self.max_rounds):
                async for chunk in self.chat(
                    messages=[m.message for m in messages],
                    vocabulary=tool_executor.vocabulary,
                    trace_info=trace_info,
                ):
                    if isinstance(chunk, MessageDto):
                        messages.append(chunk)
                    elif isinstance(chunk, ChatBaseResponse):
                        yield chunk
                    else:
                        raise ValueError(f"Unexpected chunk type: {type(chunk)}")

                attrs = messages[-1].attrs
                if not (attrs and attrs.tool_invocations):
                    break
                async for chunk in tool_executor.astream(
                    messages, trace_info=trace_info.get_child("tool_executor")
                ):
                    if isinstance(chunk, MessageDto):
                        messages.append(chunk)
                    elif isinstance(chunk, ChatBaseResponse):
                        yield chunk
                    else:
                        raise ValueError(f"Unexpected chunk type: {type(chunk)}")
            else:
                trace_info.warning(
                    {"message": "Max rounds reached", "max_rounds": self.max_rounds}
                )
                yield ChatErrorResponse(
                    message=f"Stopped after {self.max_rounds} rounds of tool use."
                )
