"""
Submission descriptor and launch script generation.

Everything here is a pure function of (JobSpec, framework name, settings):
the same input always renders byte-identical descriptor JSON and scripts,
so a retried submission uploads and sends exactly what the first attempt did.
"""

import json
import re
import shlex
from pathlib import Path
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from pydantic import BaseModel, ConfigDict

from bifrost.common.models.framework import (
    AmResource,
    CompletionPolicy,
    PlatformParameters,
    PortDefinition,
    ResourceDescriptor,
    RetryPolicy,
    SubmissionDescriptor,
    TaskRoleDescriptor,
    TaskService,
    UserDescriptor,
)
from bifrost.common.models.jobs import JobSpec, TaskRoleSpec
from bifrost.gateway.config import GatewaySettings

DESCRIPTOR_VERSION = 10
# retry_count value that selects the simple, fixed-count retry policy
SIMPLE_RETRY_SENTINEL = -2
DEFAULT_QUEUE = "default"
DEFAULT_PORT_LABELS = ("http", "ssh")

MANAGED_SCRIPTS_DIR = "ManagedContainerScripts"
DOCKER_SCRIPTS_DIR = "DockerContainerScripts"

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

_PATH_FIELDS = ("auth_file", "data_dir", "output_dir", "code_dir")


def _env_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True)


def _template_env() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
        autoescape=False,
    )
    env.filters["shquote"] = lambda value: shlex.quote(str(value))
    env.filters["envvalue"] = _env_value
    return env


_templates = _template_env()


class LaunchScripts(BaseModel):
    """Rendered scripts, one per task role and runtime style, in task role order."""
    model_config = ConfigDict(frozen=True)

    managed: List[str]
    docker: List[str]


def job_context_dir(settings: GatewaySettings, user_name: str, framework_name: str) -> str:
    return f"{settings.context_root}/{user_name}/{framework_name}"


def job_output_dir(settings: GatewaySettings, user_name: str, framework_name: str) -> str:
    return f"{settings.output_root}/{user_name}/{framework_name}"


def resolve_job_paths(spec: JobSpec, job_name: str, framework_name: str, settings: GatewaySettings) -> JobSpec:
    """Fill the default output directory and expand $BIFROST_* placeholders in store paths."""
    updates: Dict[str, str] = {}
    if not spec.output_dir:
        updates["output_dir"] = f"{settings.store_uri}{job_output_dir(settings, spec.user_name, framework_name)}"

    substitutions = (
        (re.compile(r"\$BIFROST_DEFAULT_FS_URI(?!\w)"), settings.store_uri),
        (re.compile(r"\$BIFROST_JOB_NAME(?!\w)"), job_name),
        (re.compile(r"\$BIFROST_USER_NAME(?!\w)"), spec.user_name),
    )
    for field in _PATH_FIELDS:
        value = updates.get(field, getattr(spec, field))
        for pattern, replacement in substitutions:
            value = pattern.sub(lambda _: replacement, value)
        if value != getattr(spec, field):
            updates[field] = value

    if not updates:
        return spec
    return spec.model_copy(update=updates)


def build_port_definitions(role: TaskRoleSpec) -> Dict[str, PortDefinition]:
    ports = {
        port.label: PortDefinition(start=port.begin_at, count=port.port_number)
        for port in role.port_list
    }
    for label in DEFAULT_PORT_LABELS:
        if label not in ports:
            ports[label] = PortDefinition(start=0, count=1)
    return ports


def build_descriptor(spec: JobSpec, framework_name: str, settings: GatewaySettings) -> SubmissionDescriptor:
    context_dir = job_context_dir(settings, spec.user_name, framework_name)

    task_roles = {}
    for index, role in enumerate(spec.task_roles):
        task_roles[role.name] = TaskRoleDescriptor(
            task_number=role.task_number,
            task_service=TaskService(
                version=0,
                entry_point=f"bash {MANAGED_SCRIPTS_DIR}/{index}.sh",
                source_locations=[f"{context_dir}/{MANAGED_SCRIPTS_DIR}"],
                resource=ResourceDescriptor(
                    cpu_number=role.cpu_number,
                    memory_mb=role.memory_mb,
                    gpu_number=role.gpu_number,
                    port_definitions=build_port_definitions(role),
                    disk_type=0,
                    disk_mb=0,
                ),
            ),
            application_completion_policy=CompletionPolicy(
                min_failed_task_count=role.min_failed_task_count,
                min_succeeded_task_count=role.min_succeeded_task_count,
            ),
        )

    return SubmissionDescriptor(
        version=DESCRIPTOR_VERSION,
        user=UserDescriptor(name=spec.user_name),
        retry_policy=RetryPolicy(
            max_retry_count=spec.retry_count,
            fancy_retry_policy=spec.retry_count != SIMPLE_RETRY_SENTINEL,
        ),
        task_roles=task_roles,
        platform_specific_parameters=PlatformParameters(
            queue=spec.virtual_cluster or DEFAULT_QUEUE,
            task_node_gpu_type=spec.node_gpu_type(),
            gang_allocation=True,
            am_resource=AmResource(
                cpu_number=settings.am_cpu_number,
                memory_mb=settings.am_memory_mb,
                disk_type=settings.am_disk_type,
                disk_mb=settings.am_disk_mb,
            ),
        ),
    )


def descriptor_json(descriptor: SubmissionDescriptor) -> str:
    """Canonical JSON text of a descriptor, used for the snapshot file and the launcher request."""
    return json.dumps(descriptor.model_dump(by_alias=True), indent=2)


def _feature_flags(spec: JobSpec) -> Dict[str, bool]:
    # Only a literal boolean true turns a flag on
    return {
        "is_debug": spec.job_envs.get("isDebug") is True,
        "req_rdma": spec.job_envs.get("requestRDMA") is True,
    }


def _common_context(spec: JobSpec, framework_name: str, index: int, settings: GatewaySettings) -> Dict[str, Any]:
    context_dir = job_context_dir(settings, spec.user_name, framework_name)
    return {
        "idx": index,
        "job": spec,
        "framework_name": framework_name,
        "task_role": spec.task_roles[index],
        "store_uri": settings.store_uri,
        "store_endpoint_url": settings.store_endpoint_url(),
        "context_dir": context_dir,
        "context_uri": f"{settings.store_uri}{context_dir}",
        "rdma_enabled": settings.rdma_enabled,
        "debugging_reservation_seconds": settings.debugging_reservation_seconds,
        **_feature_flags(spec),
    }


def render_managed_script(spec: JobSpec, framework_name: str, index: int, settings: GatewaySettings) -> str:
    context = _common_context(spec, framework_name, index, settings)
    context.update({
        "tasks_number": sum(role.task_number for role in spec.task_roles),
        "task_role_list": ",".join(role.name for role in spec.task_roles),
        "task_roles_number": len(spec.task_roles),
        "aggregated_status_uri": settings.framework_aggregated_status_path(framework_name),
        "docker_scripts_dir": DOCKER_SCRIPTS_DIR,
        "job_envs": list(spec.job_envs.items()),
        "role_envs": list(spec.task_roles[index].env.items()),
    })
    return _templates.get_template("managed_container.sh.j2").render(**context)


def render_docker_script(spec: JobSpec, framework_name: str, index: int, settings: GatewaySettings) -> str:
    context = _common_context(spec, framework_name, index, settings)
    return _templates.get_template("docker_container.sh.j2").render(**context)


def build_scripts(spec: JobSpec, framework_name: str, settings: GatewaySettings) -> LaunchScripts:
    indexes = range(len(spec.task_roles))
    return LaunchScripts(
        managed=[render_managed_script(spec, framework_name, i, settings) for i in indexes],
        docker=[render_docker_script(spec, framework_name, i, settings) for i in indexes],
    )
