"""Async client for the n8n public REST API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from app.workflow_import.config import N8nConfig
from app.workflow_import.errors import N8nApiError
from app.workflow_import.loader import extract_trigger_paths

logger = logging.getLogger("app.workflow_import.client")

# Fields n8n accepts on create/update; "tags" is read-only and rejected on write.
WRITABLE_WORKFLOW_FIELDS = ("name", "nodes", "connections", "settings", "staticData")


def extract_error_message(body: Any) -> Optional[str]:
    """Pull a human readable message out of an n8n error body."""

    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message:
            return message
        error = body.get("error")
        if isinstance(error, dict):
            nested = error.get("message")
            if isinstance(nested, str) and nested:
                return nested
        if isinstance(error, str) and error:
            return error
        return None
    if isinstance(body, str) and body.strip():
        return body.strip()
    return None


def build_workflow_body(workflow: Dict[str, Any]) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "name": workflow["name"],
        "nodes": workflow["nodes"],
        "connections": workflow.get("connections") or {},
    }
    for key in WRITABLE_WORKFLOW_FIELDS[3:]:
        if workflow.get(key) is not None:
            body[key] = workflow[key]
    return body


class N8nClient:
    """
    Client for the n8n REST API.

    Every call is authenticated with the ``X-N8N-API-KEY`` header against
    ``{api_url}/api/v1``. Non-2xx responses raise :class:`N8nApiError` with
    the status code and the parsed error body.
    """

    def __init__(
        self,
        config: N8nConfig,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._timeout = timeout
        self._transport = transport

    @property
    def config(self) -> N8nConfig:
        return self._config

    def _http(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout or self._timeout, transport=self._transport)

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self._config.api_url}/api/v1{endpoint}"
        headers = {"X-N8N-API-KEY": self._config.api_key, "Accept": "application/json"}

        try:
            async with self._http() as client:
                response = await client.request(method, url, json=json, params=params, headers=headers)
        except httpx.RequestError as exc:
            logger.error(
                "n8n_request_error",
                extra={"method": method, "endpoint": endpoint, "error": str(exc)},
            )
            raise N8nApiError(f"Failed to connect to n8n: {exc}") from exc

        if response.is_error:
            try:
                body: Any = response.json()
            except ValueError:
                body = response.text
            message = extract_error_message(body) or response.reason_phrase or "Unknown error"
            logger.error(
                "n8n_request_failed",
                extra={
                    "method": method,
                    "endpoint": endpoint,
                    "status_code": response.status_code,
                    "detail": message,
                },
            )
            raise N8nApiError(
                f"n8n API error ({response.status_code}): {message}",
                status_code=response.status_code,
                response=body,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            # Usually a proxy or login page answering in place of n8n.
            logger.error(
                "n8n_response_not_json",
                extra={"method": method, "endpoint": endpoint, "status_code": response.status_code},
            )
            raise N8nApiError(
                "n8n API returned a non-JSON response",
                status_code=response.status_code,
                response=response.text,
            ) from exc

    async def list_workflows(self) -> List[Dict[str, Any]]:
        """Return every workflow, following ``nextCursor`` pagination."""

        workflows: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            params = {"cursor": cursor} if cursor else None
            payload = await self._request("GET", "/workflows", params=params)
            workflows.extend(payload.get("data") or [])
            cursor = payload.get("nextCursor")
            if not cursor:
                return workflows

    async def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/workflows/{workflow_id}")

    async def create_workflow(self, workflow: Dict[str, Any]) -> Dict[str, Any]:
        created = await self._request("POST", "/workflows", json=build_workflow_body(workflow))
        logger.info(
            "n8n_workflow_created",
            extra={"workflow_id": created.get("id"), "workflow_name": workflow.get("name")},
        )
        return created

    async def update_workflow(self, workflow_id: str, workflow: Dict[str, Any]) -> Dict[str, Any]:
        updated = await self._request("PUT", f"/workflows/{workflow_id}", json=build_workflow_body(workflow))
        logger.info(
            "n8n_workflow_updated",
            extra={"workflow_id": workflow_id, "workflow_name": workflow.get("name")},
        )
        return updated

    async def delete_workflow(self, workflow_id: str) -> None:
        await self._request("DELETE", f"/workflows/{workflow_id}")
        logger.info("n8n_workflow_deleted", extra={"workflow_id": workflow_id})

    async def activate_workflow(self, workflow_id: str) -> Dict[str, Any]:
        result = await self._request("POST", f"/workflows/{workflow_id}/activate")
        logger.info("n8n_workflow_activated", extra={"workflow_id": workflow_id})
        return result

    async def deactivate_workflow(self, workflow_id: str) -> Dict[str, Any]:
        result = await self._request("POST", f"/workflows/{workflow_id}/deactivate")
        logger.info("n8n_workflow_deactivated", extra={"workflow_id": workflow_id})
        return result

    async def find_workflow_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        for workflow in await self.list_workflows():
            if workflow.get("name") == name:
                return workflow
        return None

    async def health_check(self) -> bool:
        """Return True when ``/healthz`` answers 2xx; never raises."""

        try:
            async with self._http(timeout=5.0) as client:
                response = await client.get(f"{self._config.api_url}/healthz")
        except httpx.HTTPError as exc:
            logger.warning("n8n_health_check_failed", extra={"error": str(exc)})
            return False
        return response.is_success

    async def health_report(self) -> Dict[str, Any]:
        """Health endpoint plus API access check with workflow counts."""

        report: Dict[str, Any] = {
            "healthy": False,
            "health_endpoint": await self.health_check(),
            "api_access": False,
            "workflow_count": 0,
            "active_workflows": 0,
            "error": None,
        }
        try:
            workflows = await self.list_workflows()
        except N8nApiError as exc:
            report["error"] = str(exc)
        else:
            report["api_access"] = True
            report["workflow_count"] = len(workflows)
            report["active_workflows"] = sum(1 for workflow in workflows if workflow.get("active"))
        report["healthy"] = report["health_endpoint"] and report["api_access"]
        return report

    async def test_connection(self) -> Dict[str, Any]:
        """Check reachability and API key validity; returns ``{success, error}``."""

        try:
            async with self._http(timeout=10.0) as client:
                health = await client.get(f"{self._config.api_url}/healthz")
        except httpx.TimeoutException:
            return {"success": False, "error": "Connection timeout - n8n instance not reachable"}
        except httpx.RequestError as exc:
            return {"success": False, "error": f"n8n instance not reachable: {exc}"}

        if not health.is_success:
            return {
                "success": False,
                "error": f"n8n instance not reachable (status: {health.status_code})",
            }

        try:
            await self._request("GET", "/workflows", params={"limit": 1})
        except N8nApiError as exc:
            if exc.status_code in (401, 403):
                return {"success": False, "error": "Invalid API key or insufficient permissions"}
            return {"success": False, "error": str(exc)}

        logger.info("n8n_connection_test_succeeded", extra={"api_url": self._config.api_url})
        return {"success": True, "error": None}

    async def get_workflow_webhooks(self, workflow_id: str) -> List[str]:
        """Absolute trigger URLs of a remote workflow."""

        workflow = await self.get_workflow(workflow_id)
        paths = extract_trigger_paths(workflow.get("nodes") or [])
        return [f"{self._config.webhook_base_url}{path}" for path in paths]
