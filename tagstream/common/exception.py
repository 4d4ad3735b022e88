import traceback


class CommonException(Exception):
    def __init__(self, code: int, error: str):
        super().__init__(error)
        self.code: int = code
        self.error: str = error

    def __repr__(self) -> str:
        return f"CommonException(code={self.code}, error={self.error!r})"

    @classmethod
    def parse_exception(cls, e: BaseException) -> dict:
        if isinstance(e, CommonException):
            return {"code": e.code, "error": e.error}
        return {
            "class": e.__class__.__name__,
            "message": str(e),
            "traceback": traceback.format_exception(e),
        }
