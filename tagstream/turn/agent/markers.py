import re
from typing import Callable, Iterable, Iterator

_dangling_tag_re = re.compile(r"\s?</?[^<>/\s]*$")


def opening_marker(name: str) -> str:
    return f"<{name}>"


def closing_marker(name: str) -> str:
    return f"</{name}>"


def marker_ends(buffer: str) -> Iterator[int]:
    """
    Yield every offset that directly follows a ``>``.

    Every marker ends with ``>``, so these are the only offsets at which a
    suffix test against the vocabulary can succeed.
    """
    end: int = buffer.find(">") + 1
    while end:
        yield end
        end = buffer.find(">", end) + 1


def ends_with(buffer: str, marker: str, start: int, end: int) -> bool:
    """Whether ``buffer[start:end]`` ends with ``marker``."""
    return buffer.endswith(marker, start, end)


def match_opening(
    buffer: str, end: int, start: int, accept: Callable[[str], bool]
) -> str | None:
    """
    Return the name of an opening marker ending at ``end``, if ``accept`` knows it.

    Every ``<`` inside ``buffer[start:end]`` starts a candidate, so names may
    hold any character. Candidates are tried from the nearest ``<`` backwards
    and the first accepted one wins.
    """
    if end - start < 3 or buffer[end - 1] != ">":
        return None
    i: int = buffer.rfind("<", start, end - 2)
    while i >= 0:
        if accept(name := buffer[i + 1 : end - 1]):
            return name
        i = buffer.rfind("<", start, i)
    return None


def match_named_opening(
    buffer: str, end: int, start: int, names: Iterable[str]
) -> str | None:
    """First of ``names`` whose opening marker ends ``buffer[start:end]``."""
    for name in names:
        if name and ends_with(buffer, opening_marker(name), start, end):
            return name
    return None


def greedy_value(buffer: str, value_start: int, close: str, end: int) -> str:
    """Text from ``value_start`` up to the last ``close`` inside ``buffer[:end]``."""
    value_end: int = buffer.rfind(close, value_start, end)
    if value_end < 0:
        value_end = end
    return buffer[value_start:value_end].strip()


def strip_partial_marker(text: str, marker: str) -> str:
    """Drop a trailing proper prefix of ``marker``, e.g. ``"v</pa"`` -> ``"v"``."""
    for size in range(min(len(marker) - 1, len(text)), 0, -1):
        if text.endswith(marker[:size]):
            return text[:-size]
    return text


def strip_dangling_tag(text: str) -> str:
    """Remove an unfinished tag such as ``<too`` or ``</`` from the end of ``text``.

    Only names without ``/`` or whitespace are recognised as unfinished tags.
    """
    return _dangling_tag_re.sub("", text)
