from __future__ import annotations


class JobClientError(RuntimeError):
    pass


class AuthError(JobClientError):
    def __init__(self, message: str = "FAL_KEY is not configured") -> None:
        super().__init__(message)


class HttpStepError(JobClientError):
    step = "Request"

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"{self.step} failed ({status_code}): {body[:400]}")


class SubmitError(HttpStepError):
    step = "Submit"


class StatusError(HttpStepError):
    step = "Status check"


class ResultError(HttpStepError):
    step = "Result fetch"


class ProtocolError(JobClientError):
    pass


class JobFailedError(JobClientError):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Job failed: {detail}")


class JobTimeoutError(JobClientError, TimeoutError):
    def __init__(self, request_id: str, attempts: int) -> None:
        self.request_id = request_id
        self.attempts = attempts
        super().__init__(f"Timed out waiting for {request_id} after {attempts} status checks")


class JobCancelledError(JobClientError):
    pass


class UploadError(RuntimeError):
    pass


class DecodeError(RuntimeError):
    pass


class WebhookError(RuntimeError):
    pass
