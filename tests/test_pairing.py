"""Tests for the PC client pairing relay."""

from typing import Any

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from otagon.exceptions import InvalidPairingCodeError
from otagon.services.pairing import PairingHub, validate_pairing_code


@pytest.fixture
def hub() -> PairingHub:
    return PairingHub()


@pytest.fixture
def make_socket(mocker: Any) -> Any:
    def _make_socket() -> Any:
        socket = mocker.Mock()
        socket.send_json = mocker.AsyncMock()
        return socket

    return _make_socket


class TestValidateCode:

    @pytest.mark.unit
    def test_four_digits(self) -> None:
        assert validate_pairing_code("0421") == "0421"

    @pytest.mark.unit
    @pytest.mark.parametrize("code", ["123", "12345", "abcd", "12a4", "", "1234\n"])
    def test_rejected(self, code: str) -> None:
        with pytest.raises(InvalidPairingCodeError):
            validate_pairing_code(code)


class TestPairingHub:

    @pytest.mark.unit
    async def test_first_peer_waits(self, hub: PairingHub, make_socket: Any) -> None:
        web = make_socket()

        await hub.join("1234", web)

        web.send_json.assert_awaited_once_with({"type": "waiting_for_client"})
        assert hub.peers("1234") == 1

    @pytest.mark.unit
    async def test_second_peer_connects_both(self, hub: PairingHub, make_socket: Any) -> None:
        web, pc = make_socket(), make_socket()
        await hub.join("1234", web)

        await hub.join("1234", pc)

        pc.send_json.assert_awaited_once_with({"type": "partner_connected"})
        web.send_json.assert_awaited_with({"type": "partner_connected"})

    @pytest.mark.unit
    async def test_relay_to_partner_only(self, hub: PairingHub, make_socket: Any) -> None:
        web, pc, stranger = make_socket(), make_socket(), make_socket()
        await hub.join("1234", web)
        await hub.join("1234", pc)
        await hub.join("9999", stranger)

        await hub.relay("1234", pc, '{"type": "screenshot", "dataUrl": "data:image/png;base64,AAAA"}')

        web.send_json.assert_awaited_with({"type": "screenshot", "dataUrl": "data:image/png;base64,AAAA"})
        assert pc.send_json.await_count == 1
        assert stranger.send_json.await_count == 1

    @pytest.mark.unit
    async def test_non_json_rejected(self, hub: PairingHub, make_socket: Any) -> None:
        web, pc = make_socket(), make_socket()
        await hub.join("1234", web)
        await hub.join("1234", pc)

        await hub.relay("1234", pc, "hello")

        pc.send_json.assert_awaited_with({"type": "error", "message": "Messages must be JSON."})
        assert web.send_json.await_count == 2

    @pytest.mark.unit
    async def test_leave_notifies_partner(self, hub: PairingHub, make_socket: Any) -> None:
        web, pc = make_socket(), make_socket()
        await hub.join("1234", web)
        await hub.join("1234", pc)

        await hub.leave("1234", pc)

        web.send_json.assert_awaited_with({"type": "partner_disconnected"})
        assert hub.peers("1234") == 1

        await hub.leave("1234", web)
        assert hub.peers("1234") == 0

    @pytest.mark.unit
    async def test_failed_send_does_not_stop_broadcast(self, hub: PairingHub, make_socket: Any) -> None:
        sender, broken, healthy = make_socket(), make_socket(), make_socket()
        await hub.join("1234", sender)
        await hub.join("1234", broken)
        await hub.join("1234", healthy)
        broken.send_json.side_effect = RuntimeError("socket closed")

        delivered = await hub.broadcast("1234", sender, {"type": "ping"})

        assert delivered == 1


class TestPairingSocket:

    @pytest.mark.unit
    def test_waiting_message(self, client: TestClient) -> None:
        with client.websocket_connect("/api/v1/pairing/4321") as websocket:
            assert websocket.receive_json() == {"type": "waiting_for_client"}

    @pytest.mark.unit
    def test_invalid_code_closed(self, client: TestClient) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/api/v1/pairing/12ab") as websocket:
                websocket.receive_json()

        assert exc_info.value.code == 1008
