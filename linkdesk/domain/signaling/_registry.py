"""In-process session registry.

Every operation here is synchronous. Under a single event loop that makes each
call an atomic critical section: a lookup followed by a bind inside one call
always sees a consistent snapshot.
"""

from loguru import logger

from linkdesk.schemas import EndpointRole
from linkdesk.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._code_generator import CodeGenerator
from .endpoint import Endpoint
from .session_models import EndpointBinding, Session


class SessionRegistry:
    """Owns the code → session map and the endpoint → binding index.

    Both maps are updated together so that `find_by_endpoint` never needs to
    scan sessions.
    """

    def __init__(self, code_generator: CodeGenerator | None = None, max_code_attempts: int = 16):
        self._codes = code_generator or CodeGenerator()
        self._max_code_attempts = max(1, max_code_attempts)
        self._sessions: dict[str, Session] = {}
        self._bindings: dict[str, EndpointBinding] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, code: str) -> bool:
        return code in self._sessions

    def draw_code(self) -> str:
        """Return a code no live session uses, without reserving it.

        Raises:
            AppError: E_CODE_SPACE_EXHAUSTED if every drawn code was taken
        """
        for _ in range(self._max_code_attempts):
            code = self._codes.generate()
            if code not in self._sessions:
                return code
            logger.debug(f"Session code collision on {code}, retrying")

        raise AppError(
            errcode=AppErrorCode.E_CODE_SPACE_EXHAUSTED,
            errmesg=f"No free session code after {self._max_code_attempts} attempts",
            status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
        )

    def create(self, host: Endpoint, code: str | None = None) -> str:
        """Store a new session hosted by `host` and return its code.

        `code` comes from an earlier `draw_code`; a fresh one is drawn when it
        is missing or has been taken since.

        Raises:
            AppError: E_CODE_SPACE_EXHAUSTED if every drawn code was taken
        """
        if code is None or code in self._sessions:
            code = self.draw_code()
        self._sessions[code] = Session(code=code, host=host)
        self._bindings[host.endpoint_id] = EndpointBinding(code=code, role=EndpointRole.HOST)
        logger.info(f"Session created: code={code} host={host.endpoint_id}")
        return code

    def lookup(self, code: str) -> Session | None:
        return self._sessions.get(code)

    def check_joinable(self, code: str, controller: Endpoint) -> Session:
        """Return the session `controller` may join as `code`.

        Raises:
            AppError: E_SESSION_NOT_FOUND if no session uses `code`
            AppError: E_HOST_UNAVAILABLE if the stored host is no longer open
            AppError: E_SELF_JOIN if `controller` hosts that session
        """
        session = self._sessions.get(code)
        if session is None:
            raise AppError(
                errcode=AppErrorCode.E_SESSION_NOT_FOUND,
                errmesg=f"Session {code!r} not found",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        if not session.host.is_open:
            raise AppError(
                errcode=AppErrorCode.E_HOST_UNAVAILABLE,
                errmesg=f"Host of session {code} is not connected",
                status_code=HttpStatusCode.CONFLICT,
            )
        if session.host is controller:
            raise AppError(
                errcode=AppErrorCode.E_SELF_JOIN,
                errmesg=f"Host {controller.endpoint_id} cannot control its own session {code}",
                status_code=HttpStatusCode.CONFLICT,
            )
        return session

    def bind_controller(self, code: str, controller: Endpoint) -> Session:
        """Attach `controller` to the session `code`.

        A controller already present is replaced and loses its binding.

        Raises:
            AppError: any error of `check_joinable`
        """
        session = self.check_joinable(code, controller)

        previous = session.controller
        if previous is not None and previous is not controller:
            self._bindings.pop(previous.endpoint_id, None)
            logger.info(f"Controller {previous.endpoint_id} replaced in session {code}")

        session.controller = controller
        self._bindings[controller.endpoint_id] = EndpointBinding(
            code=code, role=EndpointRole.CONTROLLER
        )
        logger.info(f"Controller joined: code={code} controller={controller.endpoint_id}")
        return session

    def release_controller(self, code: str) -> Session | None:
        """Clear the controller slot; the session itself persists."""
        session = self._sessions.get(code)
        if session is None:
            return None

        if session.controller is not None:
            self._bindings.pop(session.controller.endpoint_id, None)
            session.controller = None
        logger.info(f"Controller left, session stays: code={code}")
        return session

    def remove_by_host_disconnect(self, code: str) -> Session | None:
        """Delete the session regardless of controller presence."""
        session = self._sessions.pop(code, None)
        if session is None:
            return None

        self._bindings.pop(session.host.endpoint_id, None)
        if session.controller is not None:
            self._bindings.pop(session.controller.endpoint_id, None)
        logger.info(f"Host left, session removed: code={code}")
        return session

    def find_by_endpoint(self, endpoint: Endpoint) -> EndpointBinding | None:
        return self._bindings.get(endpoint.endpoint_id)

    def clear(self) -> None:
        if self._sessions:
            logger.info(f"Dropping {len(self._sessions)} active session(s)")
        self._sessions.clear()
        self._bindings.clear()
