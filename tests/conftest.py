import pytest

from tagstream.common.trace_info import TraceInfo
from tagstream.turn.entity.vocabulary import TagVocabulary


@pytest.fixture
def vocabulary() -> TagVocabulary:
    return TagVocabulary.model_validate(
        {
            "tags": [
                {"name": "toolA", "parameters": ["p1", "p2"], "required": ["p1"]},
                {
                    "name": "toolB",
                    "parameters": ["path", "content"],
                    "required": ["path", "content"],
                    "verbatim": "content",
                },
            ]
        }
    )


@pytest.fixture
def trace_info() -> TraceInfo:
    return TraceInfo(request_id="test")
