from fastapi import APIRouter, HTTPException, Header, Query
from typing import Any, Dict, List, Optional

from bifrost.common.models.jobs import ExecutionTypeRequest, JobDetail, JobSpec, JobSummary, SshInfo
from bifrost.gateway.service.jobs import JobService
from bifrost.gateway.utils.logger import log_buffer

router = APIRouter()

# Globals (Injected from main)
service: Optional[JobService] = None

ADMIN_ROLE = "admin"


def _service() -> JobService:
    if service is None:
        raise HTTPException(status_code=503, detail="Job service not initialized")
    return service


def _caller(user_name: Optional[str]) -> str:
    if not user_name:
        raise HTTPException(status_code=401, detail="Missing X-User-Name header")
    return user_name


# --- Jobs ---

@router.get("/api/v1/jobs", response_model=List[JobSummary], response_model_by_alias=True)
async def list_jobs(username: Optional[str] = Query(None)):
    return await _service().list_jobs(username=username)


@router.get("/api/v1/user/{namespace}/jobs", response_model=List[JobSummary], response_model_by_alias=True)
async def list_namespaced_jobs(namespace: str):
    return await _service().list_jobs(namespace=namespace)


@router.get("/api/v1/jobs/{name}", response_model=JobDetail, response_model_by_alias=True)
async def get_job(name: str):
    return await _service().get_job(name)


@router.get("/api/v1/user/{namespace}/jobs/{name}", response_model=JobDetail, response_model_by_alias=True)
async def get_namespaced_job(namespace: str, name: str):
    return await _service().get_job(name, namespace)


async def _submit(name: str, spec: JobSpec, namespace: Optional[str], x_user_name: Optional[str]) -> Dict[str, Any]:
    if spec.job_name != name:
        raise HTTPException(status_code=400, detail=f"Job name {spec.job_name} does not match path {name}")
    if x_user_name and x_user_name != spec.user_name:
        # Submissions always run as the authenticated caller
        spec = spec.model_copy(update={"user_name": x_user_name})
    await _service().submit_job(spec, namespace)
    return {"message": f"update job {name} successfully"}


@router.put("/api/v1/jobs/{name}", status_code=202)
async def submit_job(name: str, spec: JobSpec, x_user_name: Optional[str] = Header(None)):
    return await _submit(name, spec, None, x_user_name)


@router.put("/api/v1/user/{namespace}/jobs/{name}", status_code=202)
async def submit_namespaced_job(namespace: str, name: str, spec: JobSpec, x_user_name: Optional[str] = Header(None)):
    return await _submit(name, spec, namespace, x_user_name)


@router.delete("/api/v1/jobs/{name}", status_code=202)
async def delete_job(name: str, x_user_name: Optional[str] = Header(None), x_role: Optional[str] = Header(None)):
    await _service().delete_job(name, None, _caller(x_user_name), x_role == ADMIN_ROLE)
    return {"message": f"deleted job {name} successfully"}


@router.delete("/api/v1/user/{namespace}/jobs/{name}", status_code=202)
async def delete_namespaced_job(namespace: str, name: str, x_user_name: Optional[str] = Header(None), x_role: Optional[str] = Header(None)):
    await _service().delete_job(name, namespace, _caller(x_user_name), x_role == ADMIN_ROLE)
    return {"message": f"deleted job {name} successfully"}


@router.put("/api/v1/jobs/{name}/executionType", status_code=202)
async def set_execution_type(name: str, req: ExecutionTypeRequest, x_user_name: Optional[str] = Header(None), x_role: Optional[str] = Header(None)):
    await _service().set_execution_type(name, None, _caller(x_user_name), x_role == ADMIN_ROLE, req.value)
    return {"message": f"{req.value.value} job {name} successfully"}


@router.put("/api/v1/user/{namespace}/jobs/{name}/executionType", status_code=202)
async def set_namespaced_execution_type(namespace: str, name: str, req: ExecutionTypeRequest, x_user_name: Optional[str] = Header(None), x_role: Optional[str] = Header(None)):
    await _service().set_execution_type(name, namespace, _caller(x_user_name), x_role == ADMIN_ROLE, req.value)
    return {"message": f"{req.value.value} job {name} successfully"}


@router.get("/api/v1/jobs/{name}/config")
async def get_job_config(name: str, x_user_name: Optional[str] = Header(None)):
    return await _service().get_job_config(_caller(x_user_name), None, name)


@router.get("/api/v1/user/{namespace}/jobs/{name}/config")
async def get_namespaced_job_config(namespace: str, name: str):
    return await _service().get_job_config(namespace, namespace, name)


@router.get("/api/v1/jobs/{name}/ssh", response_model=SshInfo, response_model_by_alias=True)
async def get_job_ssh_info(name: str, application_id: str = Query(...), x_user_name: Optional[str] = Header(None)):
    return await _service().get_job_ssh_info(_caller(x_user_name), None, name, application_id)


@router.get("/api/v1/user/{namespace}/jobs/{name}/ssh", response_model=SshInfo, response_model_by_alias=True)
async def get_namespaced_job_ssh_info(namespace: str, name: str, application_id: str = Query(...)):
    return await _service().get_job_ssh_info(namespace, namespace, name, application_id)


# --- Gateway ---

@router.get("/api/v1/logs")
async def get_buffer_logs(limit: int = 200, job_name: Optional[str] = None, level: Optional[str] = None):
    return log_buffer.tail(limit=limit, job_name=job_name, level=level)
