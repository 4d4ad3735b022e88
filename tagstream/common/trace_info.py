import json as jsonlib
import logging
from typing import Any

import shortuuid


class TraceInfo:
    def __init__(
        self,
        request_id: str | None = None,
        logger: logging.Logger | None = None,
        payload: dict | None = None,
    ):
        self.request_id: str = request_id or shortuuid.uuid()
        self.logger: logging.Logger = logger or logging.getLogger("tagstream")
        self.payload: dict = payload or {}

    def get_child(
        self, name: str | None = None, addition_payload: dict | None = None
    ) -> "TraceInfo":
        return TraceInfo(
            self.request_id,
            self.logger.getChild(name) if name else self.logger,
            self.payload | (addition_payload or {}),
        )

    def _dumps(self, message: dict) -> str:
        return jsonlib.dumps(
            {"request_id": self.request_id} | self.payload | message,
            ensure_ascii=False,
            separators=(",", ":"),
            default=str,
        )

    def log(self, level: int, message: dict[str, Any]) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self._dumps(message), stacklevel=3)

    def debug(self, message: dict) -> None:
        self.log(logging.DEBUG, message)

    def info(self, message: dict) -> None:
        self.log(logging.INFO, message)

    def warning(self, message: dict) -> None:
        self.log(logging.WARNING, message)

    def error(self, message: dict) -> None:
        self.log(logging.ERROR, message)
