"""
Tests for host detection and self-ping keep-alive.
"""

import pytest
from aiohttp import web, test_utils

from audioporter.network import host_info
from audioporter.network.host_info import HostInfo, get_local_ips
from audioporter.network.keepalive import SelfPinger


class TestHostInfo:
    """Tests for HostInfo."""

    def test_to_message(self):
        info = HostInfo(port=3000, ip="192.168.1.2", hostname="desk")
        assert info.to_message() == {
            "type": "server_info",
            "ip": "192.168.1.2",
            "hostname": "desk",
            "port": 3000,
        }

    def test_detect_falls_back_to_localhost(self, monkeypatch):
        monkeypatch.setattr(host_info, "get_best_local_ip", lambda: None)
        info = HostInfo.detect(3000)
        assert info.ip == "localhost"
        assert info.port == 3000
        assert info.hostname

    def test_detect_uses_best_ip(self, monkeypatch):
        monkeypatch.setattr(host_info, "get_best_local_ip", lambda: "10.0.0.5")
        assert HostInfo.detect(8080).ip == "10.0.0.5"

    def test_local_ips_exclude_loopback(self):
        for interface in get_local_ips():
            assert not interface.ip.startswith("127.")


class TestSelfPinger:
    """Tests for SelfPinger."""

    @pytest.mark.asyncio
    async def test_ping_once(self):
        hits = []

        async def handler(request):
            hits.append(request.path)
            return web.Response(text="ok")

        app = web.Application()
        app.router.add_get("/", handler)
        server = test_utils.TestServer(app)
        await server.start_server()

        pinger = SelfPinger(str(server.make_url("/")), interval=3600)
        await pinger.start()
        try:
            assert await pinger.ping_once() == 200
            assert pinger.last_status == 200
            assert hits == ["/"]
        finally:
            await pinger.stop()
            await server.close()

    @pytest.mark.asyncio
    async def test_failure_returns_none(self):
        pinger = SelfPinger("http://127.0.0.1:1/", interval=3600, timeout=1.0)
        await pinger.start()
        try:
            assert await pinger.ping_once() is None
        finally:
            await pinger.stop()

    @pytest.mark.asyncio
    async def test_not_started(self):
        pinger = SelfPinger("http://127.0.0.1:1/")
        assert await pinger.ping_once() is None
        await pinger.stop()
