"""
Job service: the job-management facade over the launcher.

Reads always go to the launcher (no local cache) and are translated into the
stable job model; writes are guarded by an ownership check against the
launcher's own record of who submitted the framework.
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import yaml

from bifrost.common.errors import ForbiddenError, NotFoundError
from bifrost.common.models.framework import FrameworkInfo, FrameworkStatus, FrameworkSummary, TaskStatusRecord
from bifrost.common.models.jobs import (
    TERMINAL_JOB_STATES,
    ExecutionType,
    ExitDiagnosis,
    ExitTrigger,
    JobDetail,
    JobSpec,
    JobStatusDetail,
    JobSummary,
    SshContainer,
    SshInfo,
    SshKeyPair,
    TaskRoleDetail,
    TaskStatus,
)
from bifrost.common.storage.client import DistributedStore
from bifrost.gateway.config import GatewaySettings
from bifrost.gateway.descriptor.builder import build_descriptor, build_scripts, descriptor_json, resolve_job_paths
from bifrost.gateway.diagnostics.extractor import extract_exit_messages
from bifrost.gateway.exitspec.table import ExitSpecTable
from bifrost.gateway.launcher.client import LauncherClient
from bifrost.gateway.provisioning.context import ContextProvisioner
from bifrost.gateway.state.translator import aggregate_retries, translate_job_state, translate_task_state
from bifrost.gateway.utils.logger import logger

NAMESPACE_SEPARATOR = "~"
# Created time reported for frameworks submitted before the launcher recorded one
LEGACY_CREATED_TIME = int(datetime(2018, 2, 1, tzinfo=timezone.utc).timestamp() * 1000)

SSH_CONTAINER_PATTERN = re.compile(r"^container_(.*)-(.*)-(.*)$")


def framework_name_of(name: str, namespace: Optional[str] = None) -> str:
    return f"{namespace}{NAMESPACE_SEPARATOR}{name}" if namespace else name


def parse_container_ports(ports: Optional[str]) -> Dict[str, str]:
    """'http:8080;ssh:2222;' -> {'http': '8080', 'ssh': '2222'}"""
    result = {}
    if not ports:
        return result
    for port in ports.split(";"):
        if port:
            label, _, value = port.partition(":")
            result[label] = value
    return result


def build_exit_diagnosis(status: FrameworkStatus, exit_specs: ExitSpecTable, job_name: Optional[str] = None) -> ExitDiagnosis:
    trigger = None
    if (status.application_exit_trigger_message is not None
            or status.application_exit_trigger_task_role_name is not None
            or status.application_exit_trigger_task_index is not None):
        trigger = ExitTrigger(
            message=status.application_exit_trigger_message,
            task_role_name=status.application_exit_trigger_task_role_name,
            task_index=status.application_exit_trigger_task_index,
        )
    return ExitDiagnosis(
        code=status.application_exit_code,
        spec=exit_specs.lookup(status.application_exit_code),
        messages=extract_exit_messages(status.application_exit_diagnostics, job_name=job_name),
        trigger=trigger,
        diagnostics=status.application_exit_diagnostics,
        exit_type=status.application_exit_type,
    )


def _task_status(task: TaskStatusRecord) -> TaskStatus:
    return TaskStatus(
        task_index=task.task_index,
        task_state=translate_task_state(task.task_state, task.container_exit_code),
        container_id=task.container_id,
        container_ip=task.container_ip,
        container_ports=parse_container_ports(task.container_ports),
        container_gpus=task.container_gpus,
        container_log=task.container_log_http_address,
        container_exit_code=task.container_exit_code,
    )


def generate_job_detail(framework: FrameworkInfo, exit_specs: ExitSpecTable) -> JobDetail:
    job_status = JobStatusDetail(name=framework.name)

    status = framework.aggregated_framework_status.framework_status
    if status is not None:
        state = translate_job_state(status.framework_state, status.application_exit_code)
        retry_details = aggregate_retries(status.framework_retry_policy_state)
        job_status = JobStatusDetail(
            name=framework.name,
            state=state,
            sub_state=status.framework_state,
            execution_type=framework.summarized_framework_info.execution_type if framework.summarized_framework_info else None,
            retries=retry_details.total,
            retry_details=retry_details,
            created_time=status.framework_created_timestamp,
            completed_time=status.framework_completed_timestamp,
            app_id=status.application_id,
            app_progress=status.application_progress,
            app_tracking_url=status.application_tracking_url,
            app_launched_time=status.application_launched_timestamp,
            app_completed_time=status.application_completed_timestamp,
            app_exit_code=status.application_exit_code,
            exit_diagnosis=build_exit_diagnosis(status, exit_specs, framework.name) if state in TERMINAL_JOB_STATES else None,
        )

    descriptor = framework.aggregated_framework_request.framework_request.framework_descriptor
    if descriptor is not None:
        job_status.username = descriptor.user.name
    if framework.summarized_framework_info is not None:
        job_status.virtual_cluster = framework.summarized_framework_info.queue

    task_roles = {}
    for role_name, role_status in (framework.aggregated_framework_status.aggregated_task_role_statuses or {}).items():
        task_roles[role_name] = TaskRoleDetail(
            name=role_name,
            task_statuses=[_task_status(task) for task in role_status.task_statuses.task_status_array],
        )

    return JobDetail(job_status=job_status, task_roles=task_roles)


def summarize_framework(info: FrameworkSummary) -> JobSummary:
    retry_details = aggregate_retries(info.framework_retry_policy_state)
    summary = JobSummary(
        name=info.framework_name,
        username=info.user_name,
        state=translate_job_state(info.framework_state, info.application_exit_code),
        sub_state=info.framework_state,
        execution_type=info.execution_type,
        retries=retry_details.total,
        retry_details=retry_details,
        created_time=info.first_request_timestamp or LEGACY_CREATED_TIME,
        completed_time=info.framework_completed_timestamp,
        app_exit_code=info.application_exit_code,
        virtual_cluster=info.queue,
        total_gpu_number=info.total_gpu_number,
        total_task_number=info.total_task_number,
        total_task_role_number=info.total_task_role_number,
    )

    namespace, separator, name = info.framework_name.partition(NAMESPACE_SEPARATOR)
    if separator:
        if namespace != info.user_name:
            logger.warning(
                f"Found a job with different namespace and username: {info.framework_name} {info.user_name}",
                extra={"event": "namespace_mismatch", "job_name": info.framework_name},
            )
            summary.namespace = namespace
        summary.name = name
    else:
        summary.legacy = True
    return summary


class JobService:
    def __init__(
        self,
        launcher: LauncherClient,
        store: DistributedStore,
        provisioner: ContextProvisioner,
        exit_specs: ExitSpecTable,
        settings: GatewaySettings,
    ):
        self.launcher = launcher
        self.store = store
        self.provisioner = provisioner
        self.exit_specs = exit_specs
        self.settings = settings

    async def list_jobs(self, username: Optional[str] = None, namespace: Optional[str] = None) -> List[JobSummary]:
        frameworks = await self.launcher.list_frameworks(namespace or username)
        jobs = [summarize_framework(info) for info in frameworks.summarized_framework_infos]
        jobs.sort(key=lambda job: job.created_time or 0, reverse=True)
        return jobs

    async def get_job(self, name: str, namespace: Optional[str] = None) -> JobDetail:
        framework_name = framework_name_of(name, namespace)
        try:
            framework = await self.launcher.get_framework(framework_name, namespace)
        except NotFoundError:
            raise NotFoundError(f"Job {name} is not found.")
        return generate_job_detail(framework, self.exit_specs)

    async def submit_job(self, spec: JobSpec, namespace: Optional[str] = None) -> None:
        name = spec.job_name
        framework_name = framework_name_of(name, namespace)
        resolved = resolve_job_paths(spec, name, framework_name, self.settings)

        # Built once: the same descriptor is snapshotted and sent
        descriptor = build_descriptor(resolved, framework_name, self.settings)
        scripts = build_scripts(resolved, framework_name, self.settings)

        await self.provisioner.ensure_root_folders()
        await self.provisioner.provision(
            framework_name,
            resolved,
            descriptor,
            scripts,
            external_output=bool(spec.output_dir),
            submitted_spec=spec,
        )

        await self.launcher.put_framework(framework_name, descriptor_json(descriptor), namespace or spec.user_name)
        logger.info(
            f"Job {framework_name} submitted by {spec.user_name} with {len(spec.task_roles)} task role(s)",
            extra={"event": "job_submitted", "job_name": framework_name},
        )

    async def _check_owner(self, framework_name: str, namespace: Optional[str], username: str, admin: bool, action: str, name: str) -> None:
        request = await self.launcher.get_framework_request(framework_name, namespace)
        owner = request.framework_descriptor.user.name if request.framework_descriptor else None
        if not admin and username != owner:
            raise ForbiddenError(f"User {username} is not allowed to {action} job {name}.")

    async def delete_job(self, name: str, namespace: Optional[str], username: str, admin: bool = False) -> None:
        framework_name = framework_name_of(name, namespace)
        await self._check_owner(framework_name, namespace, username, admin, "remove", name)
        await self.launcher.delete_framework(framework_name, namespace)
        logger.info(f"Job {framework_name} deleted by {username}", extra={"event": "job_deleted", "job_name": framework_name})

    async def set_execution_type(self, name: str, namespace: Optional[str], username: str, admin: bool, execution_type: ExecutionType) -> None:
        framework_name = framework_name_of(name, namespace)
        await self._check_owner(framework_name, namespace, username, admin, "execute", name)
        await self.launcher.put_execution_type(framework_name, execution_type, namespace)
        logger.info(
            f"Job {framework_name} execution type set to {execution_type.value} by {username}",
            extra={"event": "job_execution_type", "job_name": framework_name},
        )

    async def get_job_config(self, user_name: str, namespace: Optional[str], name: str) -> Dict[str, Any]:
        context_dir = f"{self.settings.context_root}/{user_name}/{framework_name_of(name, namespace)}"
        try:
            content = await self.store.read_file(f"{context_dir}/JobConfig.yaml")
            return yaml.safe_load(content) or {}
        except NotFoundError:
            pass
        try:
            content = await self.store.read_file(f"{context_dir}/{self.settings.job_config_file_name}")
        except NotFoundError:
            raise NotFoundError(f"Config of job {name} is not found.")
        return json.loads(content)

    async def get_job_ssh_info(self, user_name: str, namespace: Optional[str], name: str, application_id: str) -> SshInfo:
        framework_name = framework_name_of(name, namespace)
        ssh_dir = f"{self.settings.context_root}/{user_name}/{framework_name}/ssh"
        app_dir = f"{ssh_dir}/{application_id}"

        entries = await self.store.list(app_dir)

        key_dir = f"{ssh_dir}/keyFiles"
        try:
            await self.store.list(key_dir)
            key_name = framework_name
        except NotFoundError:
            # Jobs provisioned before shared key files kept a pair per application
            key_dir = f"{app_dir}/.ssh"
            key_name = application_id

        key_pair = SshKeyPair(
            folder_path=f"{self.settings.store_uri}{key_dir}/",
            public_key_file_name=f"{key_name}.pub",
            private_key_file_name=key_name,
            private_key_direct_download_link=await self.store.presigned_url(f"{key_dir}/{key_name}"),
        )

        containers = []
        for entry in entries:
            match = SSH_CONTAINER_PATTERN.match(entry.name)
            if match:
                containers.append(SshContainer(
                    id=f"container_{match.group(1)}",
                    ssh_ip=match.group(2),
                    ssh_port=match.group(3),
                ))
        return SshInfo(containers=containers, key_pair=key_pair)
