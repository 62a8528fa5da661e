from pydantic import ConfigDict, Field
from typing import List, Any, Optional, Dict

from bifrost.common.models.base import CamelModel

# --- Submission descriptor (sent to the launcher) ---

class UserDescriptor(CamelModel):
    name: str

class RetryPolicy(CamelModel):
    max_retry_count: int
    fancy_retry_policy: bool

class PortDefinition(CamelModel):
    start: int
    count: int

class ResourceDescriptor(CamelModel):
    cpu_number: int
    memory_mb: int = Field(alias="memoryMB")
    gpu_number: int
    port_definitions: Dict[str, PortDefinition]
    disk_type: int = 0
    disk_mb: int = Field(0, alias="diskMB")

class TaskService(CamelModel):
    version: int = 0
    entry_point: str
    source_locations: List[str]
    resource: ResourceDescriptor

class CompletionPolicy(CamelModel):
    min_failed_task_count: Optional[int] = None
    min_succeeded_task_count: Optional[int] = None

class TaskRoleDescriptor(CamelModel):
    task_number: int
    task_service: TaskService
    application_completion_policy: CompletionPolicy

class AmResource(CamelModel):
    cpu_number: int
    memory_mb: int = Field(alias="memoryMB")
    disk_type: int = 0
    disk_mb: int = Field(0, alias="diskMB")

class PlatformParameters(CamelModel):
    queue: str
    task_node_gpu_type: Optional[str] = None
    gang_allocation: bool = True
    am_resource: AmResource

class SubmissionDescriptor(CamelModel):
    model_config = ConfigDict(frozen=True)

    version: int = 10
    user: UserDescriptor
    retry_policy: RetryPolicy
    task_roles: Dict[str, TaskRoleDescriptor]
    platform_specific_parameters: PlatformParameters

# --- Status documents (received from the launcher) ---

class RetryPolicyState(CamelModel):
    transient_normal_retried_count: Optional[int] = 0
    transient_conflict_retried_count: Optional[int] = 0
    un_known_retried_count: Optional[int] = 0

class FrameworkSummary(CamelModel):
    framework_name: str
    user_name: Optional[str] = None
    framework_state: Optional[str] = None
    execution_type: Optional[str] = None
    application_exit_code: Optional[int] = None
    framework_retry_policy_state: Optional[RetryPolicyState] = Field(default_factory=RetryPolicyState)
    first_request_timestamp: Optional[int] = None
    framework_completed_timestamp: Optional[int] = None
    queue: Optional[str] = None
    total_gpu_number: Optional[int] = None
    total_task_number: Optional[int] = None
    total_task_role_number: Optional[int] = None

class FrameworkSummaryList(CamelModel):
    summarized_framework_infos: List[FrameworkSummary] = []

class FrameworkStatus(CamelModel):
    framework_state: Optional[str] = None
    framework_retry_policy_state: Optional[RetryPolicyState] = Field(default_factory=RetryPolicyState)
    framework_created_timestamp: Optional[int] = None
    framework_completed_timestamp: Optional[int] = None
    application_id: Optional[str] = None
    application_progress: Optional[float] = None
    application_tracking_url: Optional[str] = None
    application_launched_timestamp: Optional[int] = None
    application_completed_timestamp: Optional[int] = None
    application_exit_code: Optional[int] = None
    application_exit_diagnostics: Optional[str] = None
    application_exit_type: Optional[str] = None
    application_exit_trigger_message: Optional[str] = None
    application_exit_trigger_task_role_name: Optional[str] = None
    application_exit_trigger_task_index: Optional[int] = None

class TaskStatusRecord(CamelModel):
    task_index: int
    task_state: Optional[str] = None
    container_id: Optional[str] = None
    container_ip: Optional[str] = None
    container_ports: Optional[str] = None # "http:8080;ssh:2222;"
    container_gpus: Optional[Any] = None
    container_log_http_address: Optional[str] = None
    container_exit_code: Optional[int] = None

class TaskStatuses(CamelModel):
    task_status_array: List[TaskStatusRecord] = []

class TaskRoleStatusRecord(CamelModel):
    task_statuses: TaskStatuses = Field(default_factory=TaskStatuses)

class AggregatedFrameworkStatus(CamelModel):
    framework_status: Optional[FrameworkStatus] = None
    aggregated_task_role_statuses: Optional[Dict[str, TaskRoleStatusRecord]] = None

class OwnerRecord(CamelModel):
    user: UserDescriptor

class FrameworkRequest(CamelModel):
    framework_descriptor: Optional[OwnerRecord] = None

class AggregatedFrameworkRequest(CamelModel):
    framework_request: FrameworkRequest = Field(default_factory=FrameworkRequest)

class FrameworkInfo(CamelModel):
    name: str
    summarized_framework_info: Optional[FrameworkSummary] = None
    aggregated_framework_status: AggregatedFrameworkStatus = Field(default_factory=AggregatedFrameworkStatus)
    aggregated_framework_request: AggregatedFrameworkRequest = Field(default_factory=AggregatedFrameworkRequest)
