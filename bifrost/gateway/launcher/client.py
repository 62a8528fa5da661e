import httpx
from typing import Optional, Dict, Any

from pydantic import ValidationError

from bifrost.common.errors import NotFoundError, UnknownError
from bifrost.common.models.framework import FrameworkInfo, FrameworkRequest, FrameworkSummaryList
from bifrost.common.models.jobs import ExecutionType
from bifrost.gateway.config import GatewaySettings
from bifrost.gateway.utils.logger import logger

class LauncherClient:
    """Thin async client for the launcher's framework REST API."""

    def __init__(self, settings: GatewaySettings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = client

    def _headers(self, user_name: Optional[str] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if user_name:
            headers["UserName"] = user_name
        return headers

    async def _request(self, method: str, url: str, user_name: Optional[str] = None, **kwargs) -> httpx.Response:
        headers = self._headers(user_name)
        headers.update(kwargs.pop("headers", {}))
        if self._client is not None:
            return await self._client.request(method, url, headers=headers, **kwargs)
        async with httpx.AsyncClient(timeout=self.settings.launcher_timeout) as client:
            return await client.request(method, url, headers=headers, **kwargs)

    def _parse(self, resp: httpx.Response, model):
        try:
            return model.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Unreadable launcher response from {resp.request.url}: {e}", extra={"event": "launcher_error"})
            raise UnknownError(resp.status_code, resp.text) from e

    def _expect(self, resp: httpx.Response, status: int):
        if resp.status_code != status:
            logger.warning(
                f"Launcher returned {resp.status_code} for {resp.request.method} {resp.request.url}",
                extra={"event": "launcher_error"},
            )
            raise UnknownError(resp.status_code, resp.text)

    async def list_frameworks(self, user_name: Optional[str] = None) -> FrameworkSummaryList:
        params = {"UserName": user_name} if user_name else None
        resp = await self._request("GET", self.settings.frameworks_path(), user_name, params=params)
        self._expect(resp, 200)
        return self._parse(resp, FrameworkSummaryList)

    async def get_framework(self, framework_name: str, user_name: Optional[str] = None) -> FrameworkInfo:
        resp = await self._request("GET", self.settings.framework_path(framework_name), user_name)
        if resp.status_code == 404:
            raise NotFoundError(f"Job {framework_name} is not found.")
        self._expect(resp, 200)
        return self._parse(resp, FrameworkInfo)

    async def get_framework_request(self, framework_name: str, user_name: Optional[str] = None) -> FrameworkRequest:
        resp = await self._request("GET", self.settings.framework_request_path(framework_name), user_name)
        if resp.status_code == 404:
            raise NotFoundError(f"Job {framework_name} is not found.")
        self._expect(resp, 200)
        return self._parse(resp, FrameworkRequest)

    async def put_framework(self, framework_name: str, descriptor_body: str, user_name: Optional[str] = None) -> None:
        resp = await self._request(
            "PUT",
            self.settings.framework_path(framework_name),
            user_name,
            content=descriptor_body.encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        self._expect(resp, 202)

    async def delete_framework(self, framework_name: str, user_name: Optional[str] = None) -> None:
        resp = await self._request("DELETE", self.settings.framework_path(framework_name), user_name)
        self._expect(resp, 202)

    async def put_execution_type(self, framework_name: str, execution_type: ExecutionType, user_name: Optional[str] = None) -> None:
        body: Dict[str, Any] = {"executionType": execution_type.value}
        resp = await self._request(
            "PUT", self.settings.framework_execution_type_path(framework_name), user_name, json=body
        )
        self._expect(resp, 202)
