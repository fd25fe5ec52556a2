"""
We use builtin exceptions where they fit (ValueError for malformed input) and
specialize where a failure has to be reported to the client or the user.

- Every exception that might be externally visible to users shall be a subclass
  of ProxyException.
- Every failure that terminates a single pipeline invocation is a subclass of
  BackendError. It carries the diagnostic that becomes the plain-text body of
  the error response, so nothing else needs to inspect the exception type.
"""


class ProxyException(Exception):
    """
    Base class for all exceptions thrown by sockproxy.
    """

    def __init__(self, message=None):
        super().__init__(message)


class OptionsError(ProxyException):
    pass


class BackendError(ProxyException):
    """
    A fatal failure of one pipeline invocation.
    """

    kind = "BackendError"
    status_code = 500

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.detail = detail

    @property
    def message(self) -> str:
        return str(self)

    def __repr__(self) -> str:
        return f"{self.kind}({self.message!r})"


class ConnectFailure(BackendError):
    kind = "ConnectFailure"


class WriteFailure(BackendError):
    kind = "WriteFailure"

    def __init__(self, message: str, phase: str, detail: str | None = None):
        super().__init__(message, detail)
        self.phase = phase


class ReadFailure(BackendError):
    kind = "ReadFailure"


class EncodingError(BackendError):
    kind = "EncodingError"


class MalformedResponse(BackendError):
    kind = "MalformedResponse"


class DeadlineExceeded(BackendError):
    kind = "DeadlineExceeded"
    status_code = 504


class StatusParseError(ProxyException):
    """
    The backend status line carried no usable status code.

    Never fatal: the parser logs it and substitutes 500.
    """

    def __init__(self, status_line: str):
        super().__init__(f"No valid status code in status line: {status_line!r}")
        self.status_line = status_line
