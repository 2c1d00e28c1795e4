from __future__ import annotations


class FetchError(Exception):
    def __init__(self, error_type: str, detail: str = "", status_code: int | None = None):
        super().__init__(f"{error_type}: {detail}")
        self.error_type = error_type
        self.detail = detail
        self.status_code = status_code


ERROR_HTTP = "HTTP_ERROR"
ERROR_TIMEOUT = "TIMEOUT"
ERROR_INVALID_URL = "INVALID_URL"
ERROR_NOT_HTML = "NOT_HTML"
ERROR_TOO_LARGE = "TOO_LARGE"
