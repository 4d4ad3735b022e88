import re
from functools import cached_property
from typing import Iterable, Protocol

from pydantic import BaseModel, Field, field_validator, model_validator

_name_re = re.compile(r"^[^<>\s](?:[^<>\r\n]*[^<>\s])?$")


class Vocabulary(Protocol):
    def is_block_name(self, candidate: str) -> bool: ...

    def parameters_of(self, block_name: str) -> Iterable[str]: ...

    def is_verbatim(self, block_name: str, param_name: str) -> bool: ...


def _check_name(name: str) -> str:
    if not _name_re.fullmatch(name):
        raise ValueError(f"Invalid tag name: {name!r}")
    return name


class ToolTag(BaseModel):
    name: str
    description: str | None = Field(default=None)
    parameters: list[str] = Field(default_factory=list)
    parameter_descriptions: dict[str, str] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    verbatim: str | None = Field(
        default=None,
        description="Parameter whose value may itself contain tag-like text",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _check_name(v)

    @field_validator("parameters")
    @classmethod
    def validate_parameters(cls, v: list[str]) -> list[str]:
        for name in v:
            _check_name(name)
        if len(set(v)) != len(v):
            raise ValueError(f"Duplicated parameter names: {v}")
        return v

    @model_validator(mode="after")
    def validate_references(self) -> "ToolTag":
        if self.verbatim is not None and self.verbatim not in self.parameters:
            raise ValueError(
                f"Verbatim parameter {self.verbatim!r} is not a parameter of {self.name!r}"
            )
        if unknown := [p for p in self.required if p not in self.parameters]:
            raise ValueError(
                f"Required parameters {unknown} are not parameters of {self.name!r}"
            )
        return self


class TagVocabulary(BaseModel):
    """
    Closed set of recognized block names and their parameters.

    Tags keep their declaration order, which is also the order the system
    prompt lists them in.
    """

    tags: list[ToolTag] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[ToolTag]) -> list[ToolTag]:
        names: list[str] = [tag.name for tag in v]
        if duplicated := sorted({n for n in names if names.count(n) > 1}):
            raise ValueError(f"Duplicated tag names: {duplicated}")
        return v

    @cached_property
    def tag_index(self) -> dict[str, ToolTag]:
        return {tag.name: tag for tag in self.tags}

    @property
    def block_names(self) -> list[str]:
        return [tag.name for tag in self.tags]

    def get(self, name: str) -> ToolTag | None:
        return self.tag_index.get(name)

    def is_block_name(self, candidate: str) -> bool:
        return candidate in self.tag_index

    def parameters_of(self, block_name: str) -> list[str]:
        if tag := self.tag_index.get(block_name):
            return tag.parameters
        return []

    def is_verbatim(self, block_name: str, param_name: str) -> bool:
        tag = self.tag_index.get(block_name)
        return tag is not None and tag.verbatim == param_name
