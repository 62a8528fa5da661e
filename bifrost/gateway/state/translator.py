from typing import Any, Optional

from bifrost.common.models.framework import RetryPolicyState
from bifrost.common.models.jobs import JobState, TaskState, RetryDetails

# Launcher exit code reported when a framework was stopped on request
STOP_EXIT_CODE = -7351

WAITING_FRAMEWORK_STATES = (
    "FRAMEWORK_WAITING",
    "APPLICATION_CREATED",
    "APPLICATION_LAUNCHED",
    "APPLICATION_WAITING",
    "APPLICATION_RETRIEVING_DIAGNOSTICS",
    "APPLICATION_COMPLETED",
)
RUNNING_FRAMEWORK_STATE = "APPLICATION_RUNNING"
COMPLETED_FRAMEWORK_STATE = "FRAMEWORK_COMPLETED"

WAITING_TASK_STATES = (
    "TASK_WAITING",
    "CONTAINER_REQUESTED",
    "CONTAINER_ALLOCATED",
    "CONTAINER_COMPLETED",
)
RUNNING_TASK_STATE = "CONTAINER_RUNNING"
COMPLETED_TASK_STATE = "TASK_COMPLETED"

def translate_job_state(framework_state: Any, exit_code: Optional[int]) -> JobState:
    # APPLICATION_COMPLETED is still WAITING: the launcher may retry the attempt
    if framework_state in WAITING_FRAMEWORK_STATES:
        return JobState.WAITING
    if framework_state == RUNNING_FRAMEWORK_STATE:
        return JobState.RUNNING
    if framework_state == COMPLETED_FRAMEWORK_STATE:
        if exit_code == 0:
            return JobState.SUCCEEDED
        if exit_code == STOP_EXIT_CODE:
            return JobState.STOPPED
        return JobState.FAILED
    return JobState.UNKNOWN

def translate_task_state(task_state: Any, exit_code: Optional[int]) -> TaskState:
    if task_state in WAITING_TASK_STATES:
        return TaskState.WAITING
    if task_state == RUNNING_TASK_STATE:
        return TaskState.RUNNING
    if task_state == COMPLETED_TASK_STATE:
        return TaskState.SUCCEEDED if exit_code == 0 else TaskState.FAILED
    return TaskState.UNKNOWN

def aggregate_retries(policy_state: Optional[RetryPolicyState]) -> RetryDetails:
    """
    Split launcher retry counters by cause.

    platform: transient failures the platform is expected to heal (node,
              network, dependent service errors)
    resource: transient failures caused by resource conflicts
    user:     failures of unknown cause, usually the user's code
    """
    if policy_state is None:
        return RetryDetails()
    return RetryDetails(
        platform=policy_state.transient_normal_retried_count or 0,
        resource=policy_state.transient_conflict_retried_count or 0,
        user=policy_state.un_known_retried_count or 0,
    )
