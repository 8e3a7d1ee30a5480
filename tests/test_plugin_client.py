import unittest

import aiohttp
from aiohttp import web
from aiohttp.test_utils import TestServer

from cli.plugin_client import PluginClient
from relay.kv_store import MemoryKVStore
from relay.service import RelayService


class TestPluginClient(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.relay = RelayService(MemoryKVStore())

        async def plugin_post(request):
            body = await request.json()
            if body["action"] == "connect":
                self.relay.connect(body["apiKey"], owner_id=body.get("ownerId"))
            elif body["action"] == "disconnect":
                self.relay.disconnect(body["apiKey"])
            return web.json_response({"success": True})

        async def plugin_get(request):
            return web.json_response(self.relay.poll(request.query["apiKey"]).to_dict())

        app = web.Application()
        app.router.add_post("/api/relay/plugin", plugin_post)
        app.router.add_get("/api/relay/plugin", plugin_get)
        self.server = TestServer(app)
        await self.server.start_server()
        self.session = aiohttp.ClientSession()
        self.client = PluginClient(str(self.server.make_url("/")), "K", owner_id="u1")

    async def asyncTearDown(self):
        await self.session.close()
        await self.server.close()

    async def test_poll_dispatches_to_handlers(self):
        received = []

        async def on_create(data):
            received.append(("async", data))

        self.client.on("create_file", on_create)
        self.client.on("delete_file", lambda data: received.append(("sync", data)))
        await self.client.connect(self.session)
        self.relay.send_signal("create_file", {"path": "a"}, credential="K")
        self.relay.send_signal("delete_file", {"path": "b"}, credential="K")
        self.relay.send_signal("unhandled", credential="K")

        signals = await self.client.poll_once(self.session)

        self.assertEqual(len(signals), 3)
        self.assertEqual(received, [("async", {"path": "a"}), ("sync", {"path": "b"})])
        self.assertEqual(await self.client.poll_once(self.session), [])

    async def test_not_live_marks_client_disconnected(self):
        await self.client.connect(self.session)
        self.assertTrue(self.client.connected)
        self.relay.disconnect("K")
        self.assertEqual(await self.client.poll_once(self.session), [])
        self.assertFalse(self.client.connected)

    async def test_failing_handler_does_not_stop_dispatch(self):
        received = []

        def broken(data):
            raise RuntimeError("boom")

        self.client.on("first", broken)
        self.client.on("second", received.append)
        await self.client.connect(self.session)
        self.relay.send_signal("first", credential="K")
        self.relay.send_signal("second", {"n": 2}, credential="K")

        with self.assertLogs("cli.plugin_client", level="ERROR"):
            await self.client.poll_once(self.session)
        self.assertEqual(received, [{"n": 2}])

    async def test_disconnect(self):
        await self.client.connect(self.session)
        await self.client.disconnect(self.session)
        self.assertFalse(self.client.connected)
        self.assertFalse(self.relay.check_connection(credential="K"))
