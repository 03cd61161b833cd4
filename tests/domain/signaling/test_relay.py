"""Tests for the RelayEngine message state machine."""

import asyncio
from unittest.mock import patch

import orjson
import pytest

from linkdesk.app_config import AppEnvironConfig
from linkdesk.domain.signaling import SignalingService, parse_message
from linkdesk.schemas import EndpointRole, IceConfiguration, IceServer
from linkdesk.utils.app_errors import AppError, AppErrorCode
from tests.fixtures.signaling_fixtures import SequenceCodes


def frame(**payload) -> str:
    return orjson.dumps(payload).decode()


async def paired(service: SignalingService, host, controller) -> str:
    service.on_connect(host)
    service.on_connect(controller)
    await service.on_message(host, frame(type="create-session"))
    code = host.received()[-1]["code"]
    await service.on_message(controller, frame(type="join-session", code=code))
    host.sent.clear()
    controller.sent.clear()
    return code


class TestScenario:
    async def test_create_join_relay_and_disconnects(self, service, make_endpoint):
        a, b = make_endpoint("A"), make_endpoint("B")
        service.on_connect(a)
        service.on_connect(b)

        await service.on_message(a, frame(type="create-session"))
        assert a.received() == [{"type": "session-created", "code": "AB12CD"}]

        await service.on_message(b, frame(type="join-session", code="AB12CD"))
        assert b.received() == [{"type": "join-success", "code": "AB12CD"}]
        assert a.received()[-1] == {"type": "controller-joined", "code": "AB12CD"}

        offer = frame(type="offer", code="AB12CD", sdp="v=0\r\no=- 1 1 IN IP4 0.0.0.0")
        await service.on_message(a, offer)
        assert b.sent[-1] == offer

        await service.on_disconnect(b)
        assert a.received()[-1] == {"type": "controller-left", "code": "AB12CD"}
        assert service.registry.lookup("AB12CD") is not None

        await service.on_disconnect(a)
        assert service.registry.lookup("AB12CD") is None


class TestMalformedInput:
    @pytest.mark.parametrize("raw", ["not json", "{", "[1, 2]", '"create-session"', "42"])
    async def test_unparseable_frames_are_dropped(self, service, make_endpoint, raw):
        endpoint = make_endpoint("a")
        service.on_connect(endpoint)

        await service.on_message(endpoint, raw)

        assert endpoint.sent == []
        assert len(service.registry) == 0
        assert endpoint.is_open

    def test_parse_message_reports_protocol_error(self):
        with pytest.raises(AppError) as exc_info:
            parse_message("{oops")
        assert exc_info.value.is_code(AppErrorCode.E_PROTOCOL_ERROR)

    async def test_non_string_code_is_dropped(self, service, make_endpoint):
        host = make_endpoint("host")
        await service.on_message(host, frame(type="create-session"))
        joiner = make_endpoint("joiner")

        await service.on_message(joiner, frame(type="join-session", code=123))

        assert joiner.sent == []
        assert service.registry.lookup("AB12CD").controller is None


class TestJoin:
    async def test_unknown_code_yields_join_failed(self, service, make_endpoint):
        host = make_endpoint("host")
        await service.on_message(host, frame(type="create-session"))
        joiner = make_endpoint("joiner")

        await service.on_message(joiner, frame(type="join-session", code="ZZ99ZZ"))

        assert joiner.received() == [{"type": "join-failed", "code": "ZZ99ZZ"}]
        assert len(service.registry) == 1
        assert service.registry.lookup("AB12CD").controller is None
        assert service.registry.find_by_endpoint(joiner) is None
        assert len(host.sent) == 1

    async def test_missing_code_yields_join_failed(self, service, make_endpoint):
        joiner = make_endpoint("joiner")

        await service.on_message(joiner, frame(type="join-session"))

        assert joiner.received() == [{"type": "join-failed", "code": ""}]

    async def test_code_is_case_insensitive(self, service, make_endpoint):
        host, joiner = make_endpoint("host"), make_endpoint("joiner")
        await service.on_message(host, frame(type="create-session"))

        await service.on_message(joiner, frame(type="join-session", code="ab12cd"))

        assert joiner.received() == [{"type": "join-success", "code": "AB12CD"}]

    async def test_closed_host_yields_join_failed(self, service, make_endpoint):
        host, joiner = make_endpoint("host"), make_endpoint("joiner")
        await service.on_message(host, frame(type="create-session"))
        host.drop()

        await service.on_message(joiner, frame(type="join-session", code="AB12CD"))

        assert joiner.received() == [{"type": "join-failed", "code": "AB12CD"}]
        assert service.registry.lookup("AB12CD").controller is None

    async def test_notifications_reach_only_their_targets(self, service, make_endpoint):
        host, joiner, bystander = make_endpoint("h"), make_endpoint("j"), make_endpoint("b")
        for endpoint in (host, joiner, bystander):
            service.on_connect(endpoint)
        await service.on_message(host, frame(type="create-session"))
        host.sent.clear()

        await service.on_message(joiner, frame(type="join-session", code="AB12CD"))

        assert host.received() == [{"type": "controller-joined", "code": "AB12CD"}]
        assert joiner.received() == [{"type": "join-success", "code": "AB12CD"}]
        assert bystander.sent == []

    async def test_host_cannot_join_own_session(self, service, make_endpoint):
        host = make_endpoint("host")
        await service.on_message(host, frame(type="create-session"))

        await service.on_message(host, frame(type="join-session", code="AB12CD"))

        assert host.received()[-1] == {"type": "join-failed", "code": "AB12CD"}
        assert service.registry.lookup("AB12CD").host is host
        assert service.lifecycle.role_of(host) == EndpointRole.HOST

    async def test_controller_switching_sessions_leaves_the_old_one(self, service, make_endpoint):
        host_1, host_2, controller = make_endpoint("h1"), make_endpoint("h2"), make_endpoint("c")
        first = await paired(service, host_1, controller)
        await service.on_message(host_2, frame(type="create-session"))
        second = host_2.received()[-1]["code"]

        await service.on_message(controller, frame(type="join-session", code=second))

        assert host_1.received() == [{"type": "controller-left", "code": first}]
        assert service.registry.lookup(first).controller is None
        assert service.registry.lookup(second).controller is controller

    async def test_newest_controller_wins(self, service, make_endpoint):
        host, first, second = make_endpoint("h"), make_endpoint("c1"), make_endpoint("c2")
        code = await paired(service, host, first)

        await service.on_message(second, frame(type="join-session", code=code))
        await service.on_message(first, frame(type="answer", code=code, sdp="stale"))

        assert service.registry.lookup(code).controller is second
        assert host.received() == [{"type": "controller-joined", "code": code}]


class TestCreate:
    async def test_second_create_replaces_and_cleans_previous_session(
        self, service, make_endpoint
    ):
        host, controller = make_endpoint("h"), make_endpoint("c")
        old_code = await paired(service, host, controller)

        await service.on_message(host, frame(type="create-session"))

        new_code = host.received()[-1]["code"]
        assert new_code != old_code
        assert service.registry.lookup(old_code) is None
        assert controller.received() == [{"type": "host-left", "code": old_code}]
        assert service.registry.find_by_endpoint(host).code == new_code
        assert len(service.registry) == 1

    async def test_exhausted_codes_leave_existing_session_untouched(
        self, stub_broker, make_endpoint
    ):
        service = SignalingService(
            AppEnvironConfig(SESSION_CODE_MAX_ATTEMPTS=2),
            broker=stub_broker,
            code_generator=SequenceCodes(["AB12CD", "EF34GH", "AB12CD", "AB12CD"]),
        )
        first_host = make_endpoint("h1")
        service.on_connect(first_host)
        await service.on_message(first_host, frame(type="create-session"))
        host, controller = make_endpoint("h2"), make_endpoint("c")
        code = await paired(service, host, controller)
        assert code == "EF34GH"

        await service.on_message(host, frame(type="create-session"))

        assert host.sent == []
        assert controller.sent == []
        session = service.registry.lookup("EF34GH")
        assert session.host is host
        assert session.controller is controller
        assert service.registry.find_by_endpoint(host).code == "EF34GH"
        assert service.registry.find_by_endpoint(controller).role == EndpointRole.CONTROLLER
        assert len(service.registry) == 2

    async def test_exhausted_codes_for_unbound_endpoint_send_nothing(
        self, stub_broker, make_endpoint
    ):
        service = SignalingService(
            AppEnvironConfig(SESSION_CODE_MAX_ATTEMPTS=1),
            broker=stub_broker,
            code_generator=SequenceCodes(["AB12CD", "AB12CD"]),
        )
        first, second = make_endpoint("h1"), make_endpoint("h2")
        await service.on_message(first, frame(type="create-session"))

        await service.on_message(second, frame(type="create-session"))

        assert second.sent == []
        assert second.is_open
        assert service.registry.find_by_endpoint(second) is None
        assert len(service.registry) == 1


class TestUnexpectedFault:
    async def test_fault_drops_only_that_message(self, service, make_endpoint):
        endpoint = make_endpoint("a")
        service.on_connect(endpoint)

        with patch.object(service.registry, "draw_code", side_effect=ZeroDivisionError):
            await service.on_message(endpoint, frame(type="create-session"))

        assert endpoint.sent == []
        assert endpoint.is_open
        assert len(service.registry) == 0

        await service.on_message(endpoint, frame(type="create-session"))

        assert endpoint.received() == [{"type": "session-created", "code": "AB12CD"}]

    async def test_fault_during_relay_keeps_session(self, service, make_endpoint):
        host, controller = make_endpoint("h"), make_endpoint("c")
        code = await paired(service, host, controller)

        with patch.object(service.registry, "lookup", side_effect=RuntimeError("boom")):
            await service.on_message(host, frame(type="offer", code=code))

        assert controller.sent == []
        assert host.is_open
        assert controller.is_open
        assert service.registry.lookup(code).controller is controller


class TestRelay:
    async def test_host_to_controller_is_byte_identical(self, service, make_endpoint):
        host, controller = make_endpoint("h"), make_endpoint("c")
        code = await paired(service, host, controller)
        raw = '{ "type" : "offer", "code": "%s",  "sdp": "v=0\\r\\n", "extra": [1, {"x": null}] }' % code

        await service.on_message(host, raw)

        assert controller.sent == [raw]
        assert host.sent == []

    async def test_controller_to_host_is_byte_identical(self, service, make_endpoint):
        host, controller = make_endpoint("h"), make_endpoint("c")
        code = await paired(service, host, controller)
        raw = frame(type="ice-candidate", code=code.lower(), candidate={"sdpMid": "0"})

        await service.on_message(controller, raw)

        assert host.sent == [raw]
        assert controller.sent == []

    async def test_unknown_code_is_dropped(self, service, make_endpoint):
        host, controller = make_endpoint("h"), make_endpoint("c")
        await paired(service, host, controller)

        await service.on_message(host, frame(type="offer", code="NOPE00"))

        assert host.sent == []
        assert controller.sent == []

    async def test_stranger_cannot_inject(self, service, make_endpoint):
        host, controller, stranger = make_endpoint("h"), make_endpoint("c"), make_endpoint("s")
        code = await paired(service, host, controller)

        await service.on_message(stranger, frame(type="offer", code=code))

        assert host.sent == []
        assert controller.sent == []
        assert stranger.sent == []

    async def test_absent_peer_is_dropped(self, service, make_endpoint):
        host = make_endpoint("h")
        await service.on_message(host, frame(type="create-session"))
        host.sent.clear()

        await service.on_message(host, frame(type="offer", code="AB12CD"))

        assert host.sent == []

    async def test_failing_peer_transport_is_isolated(self, service, make_endpoint):
        host, controller = make_endpoint("h"), make_endpoint("c", fail_send=True)
        service.on_connect(host)
        await service.on_message(host, frame(type="create-session"))
        await service.on_message(controller, frame(type="join-session", code="AB12CD"))

        await service.on_message(host, frame(type="offer", code="AB12CD"))

        assert not controller.is_open
        assert service.registry.lookup("AB12CD") is not None


class TestGetIce:
    async def test_ice_config_goes_to_sender_only(self, service, make_endpoint):
        host, controller = make_endpoint("h"), make_endpoint("c")
        await paired(service, host, controller)

        await service.on_message(controller, frame(type="get-ice"))

        assert host.sent == []
        message = controller.received()[0]
        assert message["type"] == "ice-config"
        assert "warning" not in message
        assert message["iceServers"][1] == {
            "urls": "turn:global.turn.twilio.com:3478?transport=udp",
            "username": "user-1",
            "credential": "secret-1",
        }

    async def test_degraded_config_carries_warning(self, service, make_endpoint):
        service.broker.get.return_value = IceConfiguration(
            ice_servers=[IceServer(urls="stun:stun.l.google.com:19302")],
            warning="TURN_UNAVAILABLE_USING_STUN_ONLY",
        )
        endpoint = make_endpoint("a")

        await service.on_message(endpoint, frame(type="get-ice"))

        assert endpoint.received() == [
            {
                "type": "ice-config",
                "iceServers": [{"urls": "stun:stun.l.google.com:19302"}],
                "warning": "TURN_UNAVAILABLE_USING_STUN_ONLY",
            }
        ]

    async def test_requester_leaving_during_fetch_is_harmless(
        self, service, make_endpoint, turn_ice
    ):
        released = asyncio.Event()

        async def slow_get():
            await released.wait()
            return turn_ice

        service.broker.get.side_effect = slow_get
        requester, other = make_endpoint("r"), make_endpoint("o")
        service.on_connect(requester)

        pending = asyncio.create_task(service.on_message(requester, frame(type="get-ice")))
        await asyncio.sleep(0)
        await service.on_message(other, frame(type="create-session"))
        await service.on_disconnect(requester)
        released.set()
        await pending

        assert requester.sent == []
        assert other.received() == [{"type": "session-created", "code": "AB12CD"}]
