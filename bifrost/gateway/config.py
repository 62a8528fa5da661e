"""Environment-based configuration for the bifrost gateway."""

import os
from pathlib import Path
from pydantic import BaseModel, ConfigDict

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_EXIT_SPEC_PATH = PACKAGE_DIR / "exitspec" / "job-exit-spec.yaml"

def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in ("0", "false", "no", "")

class GatewaySettings(BaseModel):
    """Settings shared by the launcher client, descriptor builder, provisioner and job service."""
    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8080
    api_token: str = "default-insecure-token"

    launcher_uri: str = "http://launcher:9086"
    launcher_timeout: float = 30.0

    store_endpoint: str = "minio:9000"
    store_access_key: str = "minioadmin"
    store_secret_key: str = "minioadmin"
    store_secure: bool = False
    store_bucket: str = "bifrost"
    # Filesystem URI rendered into descriptors and launch scripts
    store_uri: str = "s3://bifrost"

    output_root: str = "/Output"
    context_root: str = "/Container"
    job_config_file_name: str = "JobConfig.json"
    framework_description_file_name: str = "FrameworkDescription.json"

    exit_spec_path: Path = DEFAULT_EXIT_SPEC_PATH

    am_cpu_number: int = 1
    am_memory_mb: int = 1024
    am_disk_type: int = 0
    am_disk_mb: int = 0

    rdma_enabled: bool = True
    debugging_reservation_seconds: int = 604800

    def store_endpoint_url(self) -> str:
        if "://" in self.store_endpoint:
            return self.store_endpoint
        scheme = "https" if self.store_secure else "http"
        return f"{scheme}://{self.store_endpoint}"

    def frameworks_path(self) -> str:
        return f"{self.launcher_uri.rstrip('/')}/v1/Frameworks"

    def framework_path(self, framework_name: str) -> str:
        return f"{self.frameworks_path()}/{framework_name}"

    def framework_request_path(self, framework_name: str) -> str:
        return f"{self.framework_path(framework_name)}/FrameworkRequest"

    def framework_execution_type_path(self, framework_name: str) -> str:
        return f"{self.framework_path(framework_name)}/ExecutionType"

    def framework_aggregated_status_path(self, framework_name: str) -> str:
        return f"{self.framework_path(framework_name)}/AggregatedFrameworkStatus"

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        exit_spec_path = os.getenv("BIFROST_EXIT_SPEC_PATH")
        if exit_spec_path:
            exit_spec_path = Path(exit_spec_path)
            if not exit_spec_path.is_absolute():
                exit_spec_path = Path.cwd() / exit_spec_path
        else:
            exit_spec_path = DEFAULT_EXIT_SPEC_PATH

        return cls(
            host=os.getenv("BIFROST_HOST", "0.0.0.0"),
            port=int(os.getenv("BIFROST_PORT", 8080)),
            api_token=os.getenv("BIFROST_API_TOKEN", "default-insecure-token"),
            launcher_uri=os.getenv("BIFROST_LAUNCHER_URI", "http://launcher:9086"),
            launcher_timeout=float(os.getenv("BIFROST_LAUNCHER_TIMEOUT", 30)),
            store_endpoint=os.getenv("MINIO_ENDPOINT", "minio:9000"),
            store_access_key=os.getenv("MINIO_ACCESS_KEY", "minioadmin"),
            store_secret_key=os.getenv("MINIO_SECRET_KEY", "minioadmin"),
            store_secure=_env_bool("MINIO_SECURE", "false"),
            store_bucket=os.getenv("BIFROST_STORE_BUCKET", "bifrost"),
            store_uri=os.getenv("BIFROST_STORE_URI", "s3://bifrost"),
            output_root=os.getenv("BIFROST_OUTPUT_ROOT", "/Output"),
            context_root=os.getenv("BIFROST_CONTEXT_ROOT", "/Container"),
            exit_spec_path=exit_spec_path,
            am_cpu_number=int(os.getenv("BIFROST_AM_CPU_NUMBER", 1)),
            am_memory_mb=int(os.getenv("BIFROST_AM_MEMORY_MB", 1024)),
            am_disk_type=int(os.getenv("BIFROST_AM_DISK_TYPE", 0)),
            am_disk_mb=int(os.getenv("BIFROST_AM_DISK_MB", 0)),
            rdma_enabled=_env_bool("BIFROST_RDMA_ENABLED", "true"),
            debugging_reservation_seconds=int(os.getenv("BIFROST_DEBUGGING_RESERVATION_SECONDS", 604800)),
        )
