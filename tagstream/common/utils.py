import re

from pydantic import BaseModel

_continuous_break_lines_re = re.compile(r"\n{3,}")


def remove_continuous_break_lines(text: str) -> str:
    return _continuous_break_lines_re.sub("\n\n", text).strip()


def model_dump(obj) -> dict | list | str | int | float | bool | None:
    if isinstance(obj, BaseModel):
        return obj.model_dump(exclude_none=True, mode="json")
    if isinstance(obj, (list, tuple)):
        return [model_dump(each) for each in obj]
    if isinstance(obj, dict):
        return {k: model_dump(v) for k, v in obj.items()}
    return obj
