from pathlib import Path

_root: Path = Path(__file__).resolve().parents[1]


def path(*parts: str) -> Path:
    """Resolve a path relative to the ``tagstream`` package directory."""
    return _root.joinpath(*parts)
