import json
import unittest

import httpx

from bifrost.common.errors import NotFoundError, UnknownError
from bifrost.common.models.jobs import ExecutionType
from bifrost.gateway.config import GatewaySettings
from bifrost.gateway.launcher.client import LauncherClient

BASE = "http://launcher:9086/v1/Frameworks"

class TestLauncherClient(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.requests = []
        self.responses = {}

    def make_client(self):
        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            status, body = self.responses.get((request.method, request.url.path), (404, {"error": "missing"}))
            if isinstance(body, str):
                return httpx.Response(status, text=body)
            return httpx.Response(status, json=body)

        transport = httpx.MockTransport(handler)
        return LauncherClient(GatewaySettings(), client=httpx.AsyncClient(transport=transport))

    async def test_list_frameworks(self):
        self.responses[("GET", "/v1/Frameworks")] = (200, {
            "summarizedFrameworkInfos": [
                {"frameworkName": "alice~mnist", "userName": "alice", "frameworkState": "APPLICATION_RUNNING"},
            ]
        })
        result = await self.make_client().list_frameworks("alice")

        self.assertEqual(result.summarized_framework_infos[0].framework_name, "alice~mnist")
        request = self.requests[0]
        self.assertEqual(request.url.params["UserName"], "alice")
        self.assertEqual(request.headers["UserName"], "alice")
        self.assertEqual(request.headers["Accept"], "application/json")

    async def test_get_framework_not_found(self):
        with self.assertRaises(NotFoundError):
            await self.make_client().get_framework("ghost")

    async def test_get_framework_request(self):
        self.responses[("GET", "/v1/Frameworks/mnist/FrameworkRequest")] = (200, {
            "frameworkDescriptor": {"user": {"name": "alice"}}
        })
        request = await self.make_client().get_framework_request("mnist")
        self.assertEqual(request.framework_descriptor.user.name, "alice")
        self.assertNotIn("UserName", self.requests[0].headers)

    async def test_unexpected_status_is_unknown_error(self):
        self.responses[("GET", "/v1/Frameworks/mnist")] = (503, "launcher overloaded")
        with self.assertRaises(UnknownError) as ctx:
            await self.make_client().get_framework("mnist")
        self.assertEqual(ctx.exception.upstream_status, 503)
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(ctx.exception.body, "launcher overloaded")

    async def test_unreadable_body_is_unknown_error(self):
        self.responses[("GET", "/v1/Frameworks/mnist")] = (200, "<html>")
        with self.assertRaises(UnknownError) as ctx:
            await self.make_client().get_framework("mnist")
        self.assertEqual(ctx.exception.status_code, 500)

    async def test_put_framework_sends_descriptor_verbatim(self):
        self.responses[("PUT", "/v1/Frameworks/alice~mnist")] = (202, {})
        body = json.dumps({"version": 10}, indent=2)
        await self.make_client().put_framework("alice~mnist", body, "alice")

        request = self.requests[0]
        self.assertEqual(request.content.decode("utf-8"), body)
        self.assertEqual(request.headers["Content-Type"], "application/json")

    async def test_put_framework_requires_accepted(self):
        self.responses[("PUT", "/v1/Frameworks/mnist")] = (200, {})
        with self.assertRaises(UnknownError):
            await self.make_client().put_framework("mnist", "{}")

    async def test_delete_framework(self):
        self.responses[("DELETE", "/v1/Frameworks/mnist")] = (202, {})
        await self.make_client().delete_framework("mnist")
        self.assertEqual(self.requests[0].method, "DELETE")

    async def test_put_execution_type(self):
        self.responses[("PUT", "/v1/Frameworks/mnist/ExecutionType")] = (202, {})
        await self.make_client().put_execution_type("mnist", ExecutionType.STOP)
        self.assertEqual(json.loads(self.requests[0].content), {"executionType": "STOP"})

class TestLauncherPaths(unittest.TestCase):
    def test_paths(self):
        settings = GatewaySettings(launcher_uri="http://launcher:9086/")
        self.assertEqual(settings.frameworks_path(), BASE)
        self.assertEqual(settings.framework_path("a~b"), f"{BASE}/a~b")
        self.assertEqual(settings.framework_request_path("a"), f"{BASE}/a/FrameworkRequest")
        self.assertEqual(settings.framework_execution_type_path("a"), f"{BASE}/a/ExecutionType")
        self.assertEqual(settings.framework_aggregated_status_path("a"), f"{BASE}/a/AggregatedFrameworkStatus")

if __name__ == '__main__':
    unittest.main()
