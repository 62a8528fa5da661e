import os
import unittest
from pathlib import Path
from unittest.mock import patch

from bifrost.gateway.config import DEFAULT_EXIT_SPEC_PATH, GatewaySettings

class TestGatewaySettings(unittest.TestCase):
    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        settings = GatewaySettings.from_env()
        self.assertEqual(settings.port, 8080)
        self.assertEqual(settings.output_root, "/Output")
        self.assertEqual(settings.context_root, "/Container")
        self.assertEqual(settings.exit_spec_path, DEFAULT_EXIT_SPEC_PATH)
        self.assertTrue(settings.rdma_enabled)
        self.assertFalse(settings.store_secure)

    @patch.dict(os.environ, {
        "BIFROST_PORT": "9090",
        "BIFROST_LAUNCHER_URI": "http://launcher.internal:9086",
        "BIFROST_EXIT_SPEC_PATH": "conf/exit-spec.yaml",
        "BIFROST_RDMA_ENABLED": "false",
        "MINIO_SECURE": "1",
        "BIFROST_AM_MEMORY_MB": "2048",
    }, clear=True)
    def test_from_env(self):
        settings = GatewaySettings.from_env()
        self.assertEqual(settings.port, 9090)
        self.assertEqual(settings.frameworks_path(), "http://launcher.internal:9086/v1/Frameworks")
        self.assertEqual(settings.exit_spec_path, Path.cwd() / "conf/exit-spec.yaml")
        self.assertFalse(settings.rdma_enabled)
        self.assertTrue(settings.store_secure)
        self.assertEqual(settings.am_memory_mb, 2048)

    def test_store_endpoint_url(self):
        self.assertEqual(GatewaySettings().store_endpoint_url(), "http://minio:9000")
        self.assertEqual(GatewaySettings(store_secure=True).store_endpoint_url(), "https://minio:9000")
        self.assertEqual(GatewaySettings(store_endpoint="http://s3.local:9000").store_endpoint_url(), "http://s3.local:9000")

if __name__ == '__main__':
    unittest.main()
