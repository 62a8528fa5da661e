import unittest
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from bifrost.common.errors import ForbiddenError, NotFoundError, ProvisioningPartialFailure, UnknownError
from bifrost.common.models.jobs import ExecutionType, JobDetail, JobState, JobStatusDetail, JobSummary
from bifrost.gateway import main
from bifrost.gateway.api import routes

JOB_BODY = {
    "jobName": "mnist",
    "userName": "alice",
    "image": "bifrost/runtime:latest",
    "taskRoles": [{"name": "worker", "command": "python train.py"}],
}

class TestJobRoutes(unittest.TestCase):
    def setUp(self):
        self.service = AsyncMock()
        routes.service = self.service
        self.client = TestClient(main.app)
        self.headers = {"Authorization": f"Bearer {main.settings.api_token}", "X-User-Name": "alice"}

    def tearDown(self):
        routes.service = None

    def test_token_required(self):
        resp = self.client.get("/api/v1/jobs")
        self.assertEqual(resp.status_code, 403)
        resp = self.client.get("/api/v1/jobs", headers={"Authorization": "Bearer wrong"})
        self.assertEqual(resp.status_code, 403)
        self.service.list_jobs.assert_not_awaited()

    def test_health_is_public(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["service_ready"])

    def test_list_jobs(self):
        self.service.list_jobs.return_value = [
            JobSummary(name="mnist", username="alice", state=JobState.RUNNING, created_time=1700000000000),
        ]
        resp = self.client.get("/api/v1/jobs", params={"username": "alice"}, headers=self.headers)

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()[0]["name"], "mnist")
        self.assertEqual(resp.json()[0]["createdTime"], 1700000000000)
        self.service.list_jobs.assert_awaited_once_with(username="alice")

    def test_get_job(self):
        self.service.get_job.return_value = JobDetail(job_status=JobStatusDetail(name="alice~mnist", state=JobState.FAILED))
        resp = self.client.get("/api/v1/user/alice/jobs/mnist", headers=self.headers)

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["jobStatus"]["state"], "FAILED")
        self.service.get_job.assert_awaited_once_with("mnist", "alice")

    def test_missing_job_is_404(self):
        self.service.get_job.side_effect = NotFoundError("Job ghost is not found.")
        resp = self.client.get("/api/v1/jobs/ghost", headers=self.headers)
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"code": "NoJobError", "message": "Job ghost is not found."})

    def test_submit_job(self):
        resp = self.client.put("/api/v1/user/alice/jobs/mnist", json=JOB_BODY, headers=self.headers)

        self.assertEqual(resp.status_code, 202)
        spec, namespace = self.service.submit_job.call_args.args
        self.assertEqual(spec.job_name, "mnist")
        self.assertEqual(namespace, "alice")

    def test_submit_runs_as_caller(self):
        headers = dict(self.headers, **{"X-User-Name": "bob"})
        self.client.put("/api/v1/jobs/mnist", json=JOB_BODY, headers=headers)
        spec, _ = self.service.submit_job.call_args.args
        self.assertEqual(spec.user_name, "bob")

    def test_submit_name_mismatch(self):
        resp = self.client.put("/api/v1/jobs/other", json=JOB_BODY, headers=self.headers)
        self.assertEqual(resp.status_code, 400)
        self.service.submit_job.assert_not_awaited()

    def test_submit_invalid_spec(self):
        body = dict(JOB_BODY, taskRoles=[])
        resp = self.client.put("/api/v1/jobs/mnist", json=body, headers=self.headers)
        self.assertEqual(resp.status_code, 422)

    def test_submit_provisioning_failure(self):
        self.service.submit_job.side_effect = ProvisioningPartialFailure("mnist", [OSError("disk full")])
        resp = self.client.put("/api/v1/jobs/mnist", json=JOB_BODY, headers=self.headers)
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json()["code"], "ProvisioningError")

    def test_launcher_error_status_is_mirrored(self):
        self.service.submit_job.side_effect = UnknownError(409, "conflict")
        resp = self.client.put("/api/v1/jobs/mnist", json=JOB_BODY, headers=self.headers)
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["upstreamStatus"], 409)

    def test_delete_job(self):
        resp = self.client.delete("/api/v1/jobs/mnist", headers=dict(self.headers, **{"X-Role": "admin"}))
        self.assertEqual(resp.status_code, 202)
        self.service.delete_job.assert_awaited_once_with("mnist", None, "alice", True)

    def test_delete_needs_identity(self):
        resp = self.client.delete("/api/v1/jobs/mnist", headers={"Authorization": self.headers["Authorization"]})
        self.assertEqual(resp.status_code, 401)

    def test_forbidden(self):
        self.service.set_execution_type.side_effect = ForbiddenError("User alice is not allowed to execute job mnist.")
        resp = self.client.put("/api/v1/user/bob/jobs/mnist/executionType", json={"value": "STOP"}, headers=self.headers)
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["code"], "ForbiddenUserError")
        self.service.set_execution_type.assert_awaited_once_with("mnist", "bob", "alice", False, ExecutionType.STOP)

    def test_invalid_execution_type(self):
        resp = self.client.put("/api/v1/jobs/mnist/executionType", json={"value": "PAUSE"}, headers=self.headers)
        self.assertEqual(resp.status_code, 422)

    def test_job_config(self):
        self.service.get_job_config.return_value = {"jobName": "mnist"}
        resp = self.client.get("/api/v1/jobs/mnist/config", headers=self.headers)
        self.assertEqual(resp.json(), {"jobName": "mnist"})
        self.service.get_job_config.assert_awaited_once_with("alice", None, "mnist")

    def test_ssh_needs_application_id(self):
        resp = self.client.get("/api/v1/jobs/mnist/ssh", headers=self.headers)
        self.assertEqual(resp.status_code, 422)

    def test_logs(self):
        resp = self.client.get("/api/v1/logs", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertIsInstance(resp.json(), list)

class TestServiceNotReady(unittest.TestCase):
    def test_unavailable_before_startup(self):
        routes.service = None
        client = TestClient(main.app)
        resp = client.get("/api/v1/jobs", headers={"Authorization": f"Bearer {main.settings.api_token}"})
        self.assertEqual(resp.status_code, 503)

if __name__ == '__main__':
    unittest.main()
