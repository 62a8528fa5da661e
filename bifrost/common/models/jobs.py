import re
from enum import Enum
from pydantic import ConfigDict, Field, field_validator, model_validator
from typing import List, Any, Optional, Dict

from bifrost.common.models.base import CamelModel

class JobState(str, Enum):
    WAITING = "WAITING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    STOPPED = "STOPPED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

TERMINAL_JOB_STATES = (JobState.SUCCEEDED, JobState.STOPPED, JobState.FAILED)

class TaskState(str, Enum):
    WAITING = "WAITING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

class ExecutionType(str, Enum):
    START = "START"
    STOP = "STOP"

ENV_NAME_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

def _check_env_names(envs: Dict[str, Any]) -> Dict[str, Any]:
    for key in envs:
        if not ENV_NAME_PATTERN.fullmatch(key):
            raise ValueError(f"Invalid environment variable name: {key!r}")
    return envs

# --- Submission input ---

class PortSpec(CamelModel):
    model_config = ConfigDict(frozen=True)

    label: str
    begin_at: int = 0
    port_number: int = 1

class TaskRoleSpec(CamelModel):
    model_config = ConfigDict(frozen=True)

    name: str
    task_number: int = Field(1, ge=1)
    cpu_number: int = Field(1, ge=0)
    memory_mb: int = Field(1024, ge=0, alias="memoryMB")
    gpu_number: int = Field(0, ge=0)
    gpu_type: Optional[str] = None
    port_list: List[PortSpec] = []
    min_failed_task_count: Optional[int] = 1
    min_succeeded_task_count: Optional[int] = None
    command: str = ""
    env: Dict[str, Any] = {}

    @field_validator("env")
    @classmethod
    def _valid_env_names(cls, value):
        return _check_env_names(value)

class JobSpec(CamelModel):
    model_config = ConfigDict(frozen=True)

    job_name: str
    user_name: str
    virtual_cluster: Optional[str] = None
    retry_count: int = 0
    gpu_type: Optional[str] = None
    image: str = ""
    auth_file: str = ""
    data_dir: str = ""
    output_dir: str = ""
    code_dir: str = ""
    job_envs: Dict[str, Any] = {}
    task_roles: List[TaskRoleSpec] = Field(..., min_length=1)

    @field_validator("job_envs")
    @classmethod
    def _valid_job_env_names(cls, value):
        return _check_env_names(value)

    @model_validator(mode="after")
    def _unique_task_roles(self):
        seen = set()
        for role in self.task_roles:
            if role.name in seen:
                raise ValueError(f"Duplicate task role name: {role.name}")
            seen.add(role.name)
        return self

    @model_validator(mode="after")
    def _single_gpu_type(self):
        # The launcher places every role of a framework on one node gpu type
        types = {t for t in [self.gpu_type] + [role.gpu_type for role in self.task_roles] if t}
        if len(types) > 1:
            raise ValueError(f"Conflicting gpu types: {sorted(types)}")
        return self

    def node_gpu_type(self) -> Optional[str]:
        for gpu_type in [self.gpu_type] + [role.gpu_type for role in self.task_roles]:
            if gpu_type:
                return gpu_type
        return None

class ExecutionTypeRequest(CamelModel):
    value: ExecutionType

# --- Exit diagnosis ---

class ExitSpecEntry(CamelModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    code: int
    phrase: str
    issuer: Optional[str] = None
    causer: Optional[str] = None
    type: Optional[str] = None
    stage: Optional[str] = None
    behavior: Optional[str] = None
    reaction: Optional[str] = None
    reason: Optional[str] = None
    repro: List[str] = []
    solution: List[str] = []

class RuntimeExitInfo(CamelModel):
    model_config = ConfigDict(extra="allow")

    original_user_exit_code: Optional[int] = None
    reason: Optional[str] = None
    solution: Optional[Any] = None

class ExitMessages(CamelModel):
    container: Optional[str] = None
    runtime: Optional[RuntimeExitInfo] = None
    launcher: Optional[str] = None

class ExitTrigger(CamelModel):
    message: Optional[str] = None
    task_role_name: Optional[str] = None
    task_index: Optional[int] = None

class ExitDiagnosis(CamelModel):
    code: Optional[int] = None
    spec: Optional[ExitSpecEntry] = None
    messages: ExitMessages = Field(default_factory=ExitMessages)
    trigger: Optional[ExitTrigger] = None
    diagnostics: Optional[str] = None
    exit_type: Optional[str] = None

# --- Job views ---

class RetryDetails(CamelModel):
    user: int = 0
    platform: int = 0
    resource: int = 0

    @property
    def total(self) -> int:
        return self.platform + self.resource + self.user

class JobSummary(CamelModel):
    name: str
    username: Optional[str] = None
    namespace: Optional[str] = None
    legacy: bool = False
    state: JobState
    sub_state: Optional[str] = None
    execution_type: Optional[str] = None
    retries: int = 0
    retry_details: RetryDetails = Field(default_factory=RetryDetails)
    created_time: Optional[int] = None
    completed_time: Optional[int] = None
    app_exit_code: Optional[int] = None
    virtual_cluster: Optional[str] = None
    total_gpu_number: Optional[int] = None
    total_task_number: Optional[int] = None
    total_task_role_number: Optional[int] = None

class TaskStatus(CamelModel):
    task_index: int
    task_state: TaskState
    container_id: Optional[str] = None
    container_ip: Optional[str] = None
    container_ports: Dict[str, str] = {}
    container_gpus: Optional[Any] = None
    container_log: Optional[str] = None
    container_exit_code: Optional[int] = None

class TaskRoleDetail(CamelModel):
    name: str
    task_statuses: List[TaskStatus] = []

class JobStatusDetail(CamelModel):
    name: str
    username: str = "unknown"
    state: JobState = JobState.UNKNOWN
    sub_state: Optional[str] = None
    execution_type: Optional[str] = None
    retries: int = 0
    retry_details: RetryDetails = Field(default_factory=RetryDetails)
    created_time: Optional[int] = None
    completed_time: Optional[int] = None
    app_id: Optional[str] = None
    app_progress: Optional[float] = None
    app_tracking_url: Optional[str] = None
    app_launched_time: Optional[int] = None
    app_completed_time: Optional[int] = None
    app_exit_code: Optional[int] = None
    virtual_cluster: Optional[str] = None
    exit_diagnosis: Optional[ExitDiagnosis] = None

class JobDetail(CamelModel):
    job_status: JobStatusDetail
    task_roles: Dict[str, TaskRoleDetail] = {}

# --- SSH info ---

class SshContainer(CamelModel):
    id: str
    ssh_ip: str
    ssh_port: str

class SshKeyPair(CamelModel):
    folder_path: str
    public_key_file_name: str
    private_key_file_name: str
    private_key_direct_download_link: str

class SshInfo(CamelModel):
    containers: List[SshContainer] = []
    key_pair: SshKeyPair
