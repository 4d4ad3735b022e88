import pytest
from openai.types.chat import ChatCompletionChunk
from pydantic import Field

from tagstream.config import OpenAIConfig
from tagstream.turn.agent.agent import Agent
from tagstream.turn.config import TurnAgentConfig
from tagstream.turn.entity.api import (
    AgentRequest,
    ChatBlockResponse,
    ChatErrorResponse,
    ChatPreviewResponse,
)
from tagstream.turn.entity.block import TextBlock, ToolInvocationBlock


def make_chunk(content: str) -> ChatCompletionChunk:
    return ChatCompletionChunk.model_validate(
        {
            "id": "chunk",
            "object": "chat.completion.chunk",
            "created": 0,
            "model": "fake",
            "choices": [
                {"index": 0, "delta": {"content": content}, "finish_reason": None}
            ],
        }
    )


class FakeOpenAIConfig(OpenAIConfig):
    responses: list[list[str]] = Field(default_factory=list)
    calls: list[list[dict]] = Field(default_factory=list)

    async def chat(self, *, model: str = None, **kwargs):
        self.calls.append([dict(m) for m in kwargs["messages"]])
        deltas: list[str] = self.responses.pop(0)

        async def stream():
            for delta in deltas:
                yield make_chunk(delta)

        return stream()


VOCABULARY = {
    "tags": [
        {
            "name": "read_file",
            "description": "Read a file from the workspace.",
            "parameters": ["path"],
            "parameter_descriptions": {"path": "Path of the file."},
            "required": ["path"],
        },
        {
            "name": "write_to_file",
            "parameters": ["path", "content"],
            "required": ["path", "content"],
            "verbatim": "content",
        },
    ]
}


@pytest.fixture
def read_calls() -> list[str]:
    return []


def make_agent(responses: list[list[str]], read_calls: list[str], **kwargs) -> Agent:
    async def read_file(path: str) -> str:
        read_calls.append(path)
        return f"content of {path}"

    async def write_to_file(path: str, content: str) -> str:
        return f"wrote {len(content)} characters to {path}"

    config = TurnAgentConfig.model_validate(
        {
            "openai": FakeOpenAIConfig(model="fake", responses=responses),
            "vocabulary": VOCABULARY,
            **kwargs,
        }
    )
    return Agent(config, {"read_file": read_file, "write_to_file": write_to_file})


async def run(agent: Agent, trace_info, **kwargs) -> list:
    request = AgentRequest.model_validate(
        {"query": "What is in a.py?", "conversation_id": "c1"} | kwargs
    )
    return [r async for r in agent.astream(trace_info, request)]


async def test_tool_round_trip(trace_info, read_calls):
    agent = make_agent(
        [
            ["Let me read it. <read_", "file><path>a.py</pa", "th></read_file>"],
            ["The file ", "says hi."],
        ],
        read_calls,
    )
    responses = await run(agent, trace_info)

    blocks = [r.block for r in responses if isinstance(r, ChatBlockResponse)]
    assert blocks == [
        TextBlock(content="Let me read it.", complete=True),
        ToolInvocationBlock(
            name="read_file", parameters={"path": "a.py"}, complete=True
        ),
        TextBlock(content="The file says hi.", complete=True),
    ]
    assert read_calls == ["a.py"]
    assert not any(isinstance(r, ChatErrorResponse) for r in responses)

    previews = [r for r in responses if isinstance(r, ChatPreviewResponse)]
    assert all(not r.block.complete for r in previews)

    calls = agent.openai.calls
    assert len(calls) == 2
    assert calls[0][0]["role"] == "system"
    assert "## read_file" in calls[0][0]["content"]
    assert calls[0][1] == {"role": "user", "content": "What is in a.py?"}
    assert calls[1][2]["content"] == (
        "Let me read it. <read_file><path>a.py</path></read_file>"
    )
    assert calls[1][3] == {
        "role": "user",
        "content": "[read_file] Result:\ncontent of a.py",
    }


async def test_block_indexes_are_turn_wide(trace_info, read_calls):
    agent = make_agent(
        [["A <read_file><path>x</path></read_file> B"], ["done"]], read_calls
    )
    responses = await run(agent, trace_info)
    indexes = [r.index for r in responses if isinstance(r, ChatBlockResponse)]
    assert indexes == [0, 1, 2, 0]


async def test_verbatim_content_reaches_handler(trace_info, read_calls):
    agent = make_agent(
        [
            [
                "<write_to_file><path>a.html</path><content>",
                "<p>x</content></p>",
                "</content></write_to_file>",
            ],
            ["ok"],
        ],
        read_calls,
    )
    responses = await run(agent, trace_info)
    invocation = next(
        r.block
        for r in responses
        if isinstance(r, ChatBlockResponse)
        and isinstance(r.block, ToolInvocationBlock)
    )
    assert invocation.parameters["content"] == "<p>x</content></p>"
    assert agent.openai.calls[1][-1]["content"] == (
        "[write_to_file] Result:\nwrote 18 characters to a.html"
    )


async def test_interrupted_invocation_is_not_executed(trace_info, read_calls):
    agent = make_agent([["<read_file><path>a.py"], ["sorry"]], read_calls)
    responses = await run(agent, trace_info)
    assert read_calls == []
    assert any(isinstance(r, ChatErrorResponse) for r in responses)
    assert "cut off" in agent.openai.calls[1][-1]["content"]


async def test_max_rounds(trace_info, read_calls):
    invoke = ["<read_file><path>a.py</path></read_file>"]
    agent = make_agent([invoke, invoke], read_calls, max_rounds=2)
    responses = await run(agent, trace_info)
    assert read_calls == ["a.py", "a.py"]
    assert isinstance(responses[-1], ChatErrorResponse)


async def test_disabled_tool_is_plain_text(trace_info, read_calls):
    agent = make_agent(
        [["<read_file><path>a.py</path></read_file>"]], read_calls
    )
    responses = await run(agent, trace_info, tools=["write_to_file"])
    assert read_calls == []
    blocks = [r.block for r in responses if isinstance(r, ChatBlockResponse)]
    assert blocks == [
        TextBlock(
            content="<read_file><path>a.py</path></read_file>", complete=True
        )
    ]
    assert "## read_file" not in agent.openai.calls[0][0]["content"]


def test_unknown_tool_in_request(read_calls):
    agent = make_agent([], read_calls)
    with pytest.raises(ValueError):
        agent.get_tool_executor(
            AgentRequest(query="q", conversation_id="c1", tools=["toolX"])
        )


def test_render_system_prompt(read_calls):
    agent = make_agent([], read_calls)
    prompt = agent.render_system_prompt(agent.vocabulary, "English")
    assert "## read_file" in prompt
    assert "Description: Read a file from the workspace." in prompt
    assert "- path: (required) Path of the file." in prompt
    assert "<content>content here</content>" in prompt
    assert "may contain any text, including tags" in prompt
    assert prompt.endswith("Respond in English.")


def test_openai_client_settings():
    config = OpenAIConfig(
        api_key="sk-test", base_url="http://localhost:8000/v1", timeout=5, max_retries=0
    )
    client = config.get_client()
    assert client.max_retries == 0
    assert client.timeout == 5
    assert str(client.base_url).startswith("http://localhost:8000/v1")
