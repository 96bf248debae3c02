from __future__ import annotations


class GeminiError(Exception):
    """Base class for failures reported by the Gemini integration."""


class ProviderRejected(GeminiError):
    def __init__(self, status_code: int, body: str = "", *, operation: str = "generate content"):
        self.status_code = status_code
        self.body = body
        self.operation = operation
        super().__init__(f"Gemini {operation} failed with status code {status_code}")


class StreamError(GeminiError):
    """The provider reported an error in the middle of a streamed response."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UploadProtocolError(GeminiError):
    def __init__(self, message: str, *, status_code: int | None = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class ProcessingTimeout(GeminiError, TimeoutError):
    def __init__(self, file_name: str, attempts: int):
        self.file_name = file_name
        self.attempts = attempts
        super().__init__(f"File processing timed out: {file_name} still PROCESSING after {attempts} polls")


class CacheCreationFailed(GeminiError):
    def __init__(self, status_code: int | None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Gemini cache creation failed with status code {status_code}")
