"""
Tests for signal forwarding between linked connections.
"""

import pytest


async def linked_pair(connect, send, pc_remote="192.168.1.10", phone_remote="192.168.1.20"):
    pc, pc_t = await connect(pc_remote)
    phone, phone_t = await connect(phone_remote)
    await send(pc, {"type": "register_pc", "identity": "Desk PC"})
    await send(phone, {"type": "connect_request", "targetId": pc.id})
    await send(pc, {"type": "connection_accepted", "targetId": phone.id})
    return pc, pc_t, phone, phone_t


class TestSignalRelay:
    """Tests for SignalRelay via the hub."""

    @pytest.mark.asyncio
    async def test_linked_signal_delivered(self, hub, connect, send, settle):
        pc, pc_t, phone, phone_t = await linked_pair(connect, send)
        offer = {"sdp": {"type": "offer", "sdp": "v=0"}}
        await send(phone, {"type": "signal", "targetId": pc.id, "data": offer})
        await settle()

        assert pc_t.last("signal") == {"type": "signal", "data": offer, "fromId": phone.id}
        assert hub.signals.relayed == 1

    @pytest.mark.asyncio
    async def test_both_directions(self, hub, connect, send, settle):
        pc, pc_t, phone, phone_t = await linked_pair(connect, send)
        await send(phone, {"type": "signal", "targetId": pc.id, "data": "offer"})
        await send(pc, {"type": "signal", "targetId": phone.id, "data": "answer"})
        await settle()

        assert pc_t.last("signal")["data"] == "offer"
        assert phone_t.last("signal")["data"] == "answer"

    @pytest.mark.asyncio
    async def test_unlinked_signal_dropped(self, hub, connect, send, settle):
        pc, pc_t = await connect()
        stranger, stranger_t = await connect()
        await send(pc, {"type": "register_pc"})
        await send(stranger, {"type": "signal", "targetId": pc.id, "data": "offer"})
        await settle()

        assert pc_t.of_type("signal") == []
        assert stranger_t.of_type("error") == []
        assert hub.signals.dropped == 1

    @pytest.mark.asyncio
    async def test_pending_request_is_not_a_link(self, hub, connect, send, settle):
        pc, pc_t = await connect()
        phone, _ = await connect()
        await send(pc, {"type": "register_pc"})
        await send(phone, {"type": "connect_request", "targetId": pc.id})
        await send(phone, {"type": "signal", "targetId": pc.id, "data": "early"})
        await settle()

        assert pc_t.of_type("signal") == []

    @pytest.mark.asyncio
    async def test_unknown_target_dropped(self, hub, connect, send, settle):
        pc, pc_t, phone, phone_t = await linked_pair(connect, send)
        await send(phone, {"type": "signal", "targetId": "node_404_xxxxx", "data": "x"})
        await settle()

        assert pc_t.of_type("signal") == []
        assert phone_t.of_type("error") == []

    @pytest.mark.asyncio
    async def test_third_party_cannot_inject(self, hub, connect, send, settle):
        pc, pc_t, phone, phone_t = await linked_pair(connect, send)
        intruder, _ = await connect()
        await send(intruder, {"type": "signal", "targetId": pc.id, "data": "evil"})
        await settle()

        assert pc_t.of_type("signal") == []

    @pytest.mark.asyncio
    async def test_after_unpair_dropped(self, hub, connect, send, settle):
        pc, pc_t, phone, phone_t = await linked_pair(connect, send)
        await send(pc, {"type": "unpair"})
        await send(phone, {"type": "signal", "targetId": pc.id, "data": "late"})
        await settle()

        assert pc_t.of_type("signal") == []

    @pytest.mark.asyncio
    async def test_no_target_uses_partner(self, hub, connect, send, settle):
        pc, pc_t, phone, phone_t = await linked_pair(connect, send)
        await send(phone, {"type": "signal", "data": {"candidate": "c1"}})
        await settle()

        assert pc_t.last("signal") == {"type": "signal", "data": {"candidate": "c1"}, "fromId": phone.id}

    @pytest.mark.asyncio
    async def test_no_target_without_partner_dropped(self, hub, connect, send, settle):
        phone, _ = await connect()
        await send(phone, {"type": "signal", "data": "x"})
        assert hub.signals.dropped == 1

    @pytest.mark.asyncio
    async def test_payload_passed_through_untouched(self, hub, connect, send, settle):
        pc, pc_t, phone, phone_t = await linked_pair(connect, send)
        payload = {"nested": {"list": [1, 2.5, None, True], "text": "ünïcode"}}
        await send(phone, {"type": "signal", "targetId": pc.id, "data": payload})
        await settle()

        assert pc_t.last("signal")["data"] == payload
