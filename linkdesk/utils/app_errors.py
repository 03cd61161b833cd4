"""Application error type and error code catalogue."""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class HttpStatusCode(IntEnum):
    BAD_REQUEST = 400
    NOT_FOUND = 404
    CONFLICT = 409
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503


class AppErrorCode(str, Enum):
    """Error codes raised inside the signaling core.

    None of these reach a client as an error frame. Join failures are reported
    as `join-failed`, credential failures as a degraded `ice-config`, and
    everything else is dropped after logging.
    """

    E_PROTOCOL_ERROR = "E_PROTOCOL_ERROR"
    E_SESSION_NOT_FOUND = "E_SESSION_NOT_FOUND"
    E_HOST_UNAVAILABLE = "E_HOST_UNAVAILABLE"
    E_PEER_UNAVAILABLE = "E_PEER_UNAVAILABLE"
    E_SELF_JOIN = "E_SELF_JOIN"
    E_CREDENTIAL_PROVIDER = "E_CREDENTIAL_PROVIDER"
    E_CODE_SPACE_EXHAUSTED = "E_CODE_SPACE_EXHAUSTED"
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"

    def __str__(self) -> str:
        return self.value


class AppError(Exception):
    """Exception carrying an error code, an error-session id and the raising call site."""

    def __init__(
        self,
        errcode: AppErrorCode | str,
        errmesg: str = "",
        status_code: int = HttpStatusCode.BAD_REQUEST,
    ) -> None:
        self.errcode = str(errcode)
        self.errmesg = errmesg or self.errcode
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]

        caller_frame = inspect.stack()[1]
        module = inspect.getmodule(caller_frame.frame)
        module_name = (
            module.__name__
            if module and getattr(module, "__name__", None)
            else caller_frame.filename
        )
        self.caller_info = f"{module_name}:{caller_frame.function}:{caller_frame.lineno}"

        super().__init__(f"{self.errcode}: {self.errmesg}")

    def is_code(self, errcode: AppErrorCode) -> bool:
        return self.errcode == errcode.value
