"""HTTP client for the DevCollab API.

Wraps the REST routes and unwraps the `{"data": ...}` envelope. Error
envelopes become ClientApiError carrying the server's error code, so callers
branch on codes instead of status lines.
"""

import json
from collections.abc import Sequence
from typing import Any
from uuid import UUID

import httpx

# (filename, content, content_type)
FileTuple = tuple[str, bytes, str | None]

DEFAULT_TIMEOUT_S = 30.0


class ClientApiError(Exception):
    """An API call failed.

    status is 0 when no response was received.
    """

    def __init__(self, code: str, message: str, status: int):
        self.code = code
        self.message = message
        self.status = status
        super().__init__(f"{code} ({status}): {message}")


class DevCollabClient:
    """Synchronous client for one authenticated user."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_S,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "DevCollabClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise ClientApiError("E_TIMEOUT", f"Request timed out: {e}", 0) from e
        except httpx.RequestError as e:
            raise ClientApiError("E_NETWORK", f"Request failed: {e}", 0) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            error = body.get("error") if isinstance(body, dict) else None
            if isinstance(error, dict):
                raise ClientApiError(
                    error.get("code", "E_UNKNOWN"),
                    error.get("message", response.reason_phrase),
                    response.status_code,
                )
            raise ClientApiError("E_UNKNOWN", response.text or response.reason_phrase, response.status_code)

        if not isinstance(body, dict) or "data" not in body:
            raise ClientApiError("E_BAD_RESPONSE", "Response has no data envelope", response.status_code)
        return body["data"]

    # -------------------------------------------------------------------------
    # Users & chats
    # -------------------------------------------------------------------------

    def me(self) -> dict:
        return self._request("GET", "/me")

    def list_chats(self) -> list[dict]:
        return self._request("GET", "/chats")

    def get_chat(self, chat_id: UUID | str) -> dict:
        return self._request("GET", f"/chats/{chat_id}")

    def open_direct_chat(self, user_id: UUID | str) -> dict:
        return self._request("POST", f"/chats/direct/{user_id}")

    def create_project_chat(self, project_id: UUID | str) -> dict:
        return self._request("POST", f"/chats/project/{project_id}")

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    def fetch_messages(self, chat_id: UUID | str, after_seq: int | None = None) -> list[dict]:
        """Fetch a chat's messages in seq order. Also marks them read."""
        params = {"after_seq": after_seq} if after_seq is not None else None
        return self._request("GET", f"/chats/{chat_id}/messages", params=params)

    def send_message(
        self,
        chat_id: UUID | str,
        content: str = "",
        files: Sequence[FileTuple] = (),
        github_link: str | None = None,
        project_progress: dict | None = None,
    ) -> dict:
        data: dict[str, str] = {"content": content}
        if github_link:
            data["github_link"] = github_link
        if project_progress is not None:
            data["project_progress"] = json.dumps(project_progress, default=str)
        return self._request(
            "POST",
            f"/chats/{chat_id}/messages",
            data=data,
            files=[("files", f) for f in files] or None,
        )

    def upload_file(
        self,
        chat_id: UUID | str,
        filename: str,
        content: bytes,
        content_type: str | None = None,
    ) -> dict:
        return self._request(
            "POST",
            f"/chats/{chat_id}/upload",
            files={"file": (filename, content, content_type)},
        )

    def mark_read(self, chat_id: UUID | str) -> int:
        return self._request("POST", f"/chats/{chat_id}/read")["marked"]

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    def create_project(self, name: str, description: str = "", deadline: str | None = None) -> dict:
        return self._request(
            "POST",
            "/projects",
            json={"name": name, "description": description, "deadline": deadline},
        )

    def submit_module(
        self,
        project_id: UUID | str,
        title: str,
        completion_percentage: int,
        description: str = "",
        github_link: str | None = None,
        files: Sequence[FileTuple] = (),
    ) -> dict:
        """Submit a module. The result's status is "complete" or "partial"."""
        data = {
            "title": title,
            "completion_percentage": str(completion_percentage),
            "description": description,
        }
        if github_link:
            data["github_link"] = github_link
        return self._request(
            "POST",
            f"/projects/{project_id}/modules",
            data=data,
            files=[("files", f) for f in files] or None,
        )
