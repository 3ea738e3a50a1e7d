from typing import Optional


class ContentGemError(Exception):
    """Base class for every error raised by the SDK"""


class APIError(ContentGemError):
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[dict] = None,
    ):
        super().__init__(f"API Error: {message}")
        self.status_code = status_code
        self.payload = payload


class RequestError(ContentGemError):
    def __init__(self, detail: str):
        super().__init__(f"Request failed: {detail}")


class JobFailedError(ContentGemError):
    def __init__(self, message: str, handle: str, payload: dict):
        super().__init__(message)
        self.handle = handle
        self.payload = payload


class JobTimeoutError(ContentGemError, TimeoutError):
    def __init__(self, message: str, handle: str, attempts: int):
        super().__init__(message)
        self.handle = handle
        self.attempts = attempts


class PollCancelledError(ContentGemError):
    def __init__(self, handle: str):
        super().__init__(f"Polling cancelled for {handle}")
        self.handle = handle
