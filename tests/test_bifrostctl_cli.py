import json
import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from typer.testing import CliRunner

from bifrost.bifrostctl import cli

def response(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.content = json.dumps(body).encode() if body is not None else b""
    resp.json.return_value = body
    resp.text = json.dumps(body)
    return resp

class TestBifrostctl(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.session = MagicMock()
        patcher = patch("bifrost.bifrostctl.cli.requests.Session", return_value=self.session)
        patcher.start()
        self.addCleanup(patcher.stop)

    def invoke(self, *args):
        return self.runner.invoke(cli.app, ["--url", "http://gw:8080", "--token", "t0k", "--user", "alice", *args])

    def test_jobs_table(self):
        self.session.request.return_value = response(body=[
            {"name": "mnist", "username": "alice", "state": "RUNNING", "retries": 1, "createdTime": 1700000000000},
        ])
        result = self.invoke("jobs")

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("mnist", result.output)
        method, url = self.session.request.call_args.args
        self.assertEqual((method, url), ("GET", "http://gw:8080/api/v1/jobs"))
        self.session.headers.update.assert_any_call({"Authorization": "Bearer t0k"})
        self.session.headers.update.assert_any_call({"X-User-Name": "alice"})

    def test_stop(self):
        self.session.request.return_value = response(202, {"message": "STOP job mnist successfully"})
        result = self.invoke("stop", "mnist", "--namespace", "alice")

        self.assertEqual(result.exit_code, 0, result.output)
        method, url = self.session.request.call_args.args
        self.assertEqual((method, url), ("PUT", "http://gw:8080/api/v1/user/alice/jobs/mnist/executionType"))
        self.assertEqual(self.session.request.call_args.kwargs["json"], {"value": "STOP"})

    def test_submit_yaml(self):
        with tempfile.TemporaryDirectory() as workdir:
            path = os.path.join(workdir, "job.yaml")
            with open(path, "w") as f:
                f.write("jobName: mnist\nimage: bifrost/runtime\ntaskRoles:\n  - name: worker\n    command: echo hi\n")
            self.session.request.return_value = response(202, {"message": "update job mnist successfully"})
            result = self.invoke("submit", path)

        self.assertEqual(result.exit_code, 0, result.output)
        method, url = self.session.request.call_args.args
        self.assertEqual((method, url), ("PUT", "http://gw:8080/api/v1/jobs/mnist"))
        self.assertEqual(self.session.request.call_args.kwargs["json"]["userName"], "alice")

    def test_error_exits_non_zero(self):
        self.session.request.return_value = response(403, {"code": "ForbiddenUserError", "message": "not yours"})
        result = self.invoke("delete", "mnist")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("not yours", result.output)

if __name__ == '__main__':
    unittest.main()
