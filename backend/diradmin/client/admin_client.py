"""Async HTTP client for the admin API with cache synchronization.

Reads go through the shared QueryCache so later invalidations can refetch
them. Ban, role and endpoint/tool/model toggles are optimistic; every other
mutation refetches the affected families once it settles.
"""

import uuid
from typing import Any
from urllib.parse import quote

import httpx

from diradmin.client.optimistic import (
    ErrorCallback,
    OptimisticUpdate,
    Patcher,
    run_optimistic,
    run_reconciled,
)
from diradmin.client.query_cache import QueryCache, QueryFamily, QueryKey

_DEFAULT_TIMEOUT = 30.0
_ADMIN_PREFIX = "/api/v1/admin"

# Families touched by any user mutation
_USER_FAMILIES = (QueryFamily.ADMIN_USERS, QueryFamily.ADMIN_USER)
_USER_AGGREGATES = (QueryFamily.ADMIN_STATS,)


class AdminClientError(Exception):
    """Non-2xx response from the admin API.

    Attributes:
        status_code: HTTP status.
        code: Error code from the envelope, if any.
        message: Error message from the envelope, or the response text.
    """

    def __init__(self, status_code: int, message: str, code: str | None = None) -> None:
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"{status_code}: {message}")


def _segment(value: str) -> str:
    """Percent-encode a single path segment, slashes included."""
    return quote(value, safe="")


def _error_from_response(response: httpx.Response) -> AdminClientError:
    try:
        error = response.json().get("error") or {}
    except ValueError:
        error = {}
    return AdminClientError(
        response.status_code,
        error.get("message") or response.text or response.reason_phrase,
        error.get("code"),
    )


def patch_user(user_id: uuid.UUID | str, **changes: Any) -> Patcher:
    """Patcher updating one user in list envelopes and single-user entries."""
    target = str(user_id)

    def _apply(_key: QueryKey, old: Any) -> Any:
        if not isinstance(old, dict):
            return old
        if isinstance(old.get("users"), list):
            return {
                **old,
                "users": [
                    {**user, **changes} if user.get("id") == target else user
                    for user in old["users"]
                ],
            }
        if old.get("id") == target:
            return {**old, **changes}
        return old

    return _apply


def patch_list_item(list_field: str, match_field: str, match_value: Any, **changes: Any) -> Patcher:
    """Patcher updating the item of old[list_field] whose match_field equals match_value."""

    def _apply(_key: QueryKey, old: Any) -> Any:
        if not isinstance(old, dict) or not isinstance(old.get(list_field), list):
            return old
        return {
            **old,
            list_field: [
                {**item, **changes} if item.get(match_field) == match_value else item
                for item in old[list_field]
            ],
        }

    return _apply


class AdminClient:
    """Admin API client.

    Args:
        base_url: Server root, e.g. "https://chat.example.com".
        token: JWT sent as a Bearer token.
        cache: Shared query cache. A new one is created when omitted.
        on_error: Notification callback for failed mutations.
        transport: Optional httpx transport (tests use httpx.MockTransport).
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        cache: QueryCache | None = None,
        on_error: ErrorCallback | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            transport=transport,
            timeout=timeout,
        )
        self.cache = cache or QueryCache()
        self._on_error = on_error

    async def __aenter__(self) -> "AdminClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._http.request(method, f"{_ADMIN_PREFIX}{path}", **kwargs)
        if response.is_error:
            raise _error_from_response(response)
        return response.json()

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    async def list_users(
        self,
        *,
        page: int | None = None,
        limit: int | None = None,
        search: str | None = None,
        role: str | None = None,
        status: str | None = None,
        organization: str | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> dict[str, Any]:
        """GET /users through the cache (family admin.users)."""
        params = {
            "page": page,
            "limit": limit,
            "search": search,
            "role": role,
            "status": status,
            "organization": organization,
            "sortBy": sort_by,
            "sortOrder": sort_order,
        }
        params = {k: v for k, v in params.items() if v is not None}
        key = QueryKey.of(QueryFamily.ADMIN_USERS, **params)
        return await self.cache.fetch(
            key, lambda: self._request("GET", "/users", params=params)
        )

    async def get_user(self, user_id: uuid.UUID | str) -> dict[str, Any]:
        """GET /users/{id} through the cache (family admin.user)."""
        key = QueryKey.of(QueryFamily.ADMIN_USER, user_id=str(user_id))
        return await self.cache.fetch(
            key, lambda: self._request("GET", f"/users/{user_id}")
        )

    async def organization_stats(self) -> dict[str, Any]:
        """GET /organization/stats through the cache (family admin.stats)."""
        key = QueryKey.of(QueryFamily.ADMIN_STATS)
        return await self.cache.fetch(
            key, lambda: self._request("GET", "/organization/stats")
        )

    async def list_endpoints(self) -> dict[str, Any]:
        key = QueryKey.of(QueryFamily.ADMIN_ENDPOINTS)
        return await self.cache.fetch(key, lambda: self._request("GET", "/endpoints"))

    async def list_tools(self) -> dict[str, Any]:
        key = QueryKey.of(QueryFamily.ADMIN_TOOLS)
        return await self.cache.fetch(key, lambda: self._request("GET", "/tools"))

    async def list_models(self, endpoint: str) -> dict[str, Any]:
        key = QueryKey.of(QueryFamily.ADMIN_MODELS, endpoint=endpoint)
        return await self.cache.fetch(
            key, lambda: self._request("GET", f"/models/{_segment(endpoint)}")
        )

    # -----------------------------------------------------------------------
    # Optimistic mutations
    # -----------------------------------------------------------------------

    async def set_ban_status(self, user_id: uuid.UUID | str, banned: bool) -> dict[str, Any]:
        """PUT /users/{id}/status with an optimistic banned/isEnabled patch."""
        update = OptimisticUpdate(
            patch_families=_USER_FAMILIES,
            patcher=patch_user(user_id, banned=banned, isEnabled=not banned),
            reconcile_families=_USER_AGGREGATES,
        )
        return await run_optimistic(
            self.cache,
            update,
            lambda: self._request("PUT", f"/users/{user_id}/status", json={"banned": banned}),
            on_error=self._on_error,
        )

    async def ban_user(
        self, user_id: uuid.UUID | str, *, banned: bool = True, reason: str | None = None
    ) -> dict[str, Any]:
        """PUT /users/{id}/ban with an optional reason."""
        body: dict[str, Any] = {"banned": banned}
        if reason is not None:
            body["reason"] = reason
        update = OptimisticUpdate(
            patch_families=_USER_FAMILIES,
            patcher=patch_user(user_id, banned=banned, isEnabled=not banned),
            reconcile_families=_USER_AGGREGATES,
        )
        return await run_optimistic(
            self.cache,
            update,
            lambda: self._request("PUT", f"/users/{user_id}/ban", json=body),
            on_error=self._on_error,
        )

    async def change_role(self, user_id: uuid.UUID | str, role: str) -> dict[str, Any]:
        """PUT /users/{id}/role with an optimistic role patch."""
        update = OptimisticUpdate(
            patch_families=_USER_FAMILIES,
            patcher=patch_user(user_id, role=role),
            reconcile_families=_USER_AGGREGATES,
        )
        return await run_optimistic(
            self.cache,
            update,
            lambda: self._request("PUT", f"/users/{user_id}/role", json={"role": role}),
            on_error=self._on_error,
        )

    async def toggle_endpoint(self, endpoint: str, enabled: bool) -> dict[str, Any]:
        update = OptimisticUpdate(
            patch_families=(QueryFamily.ADMIN_ENDPOINTS,),
            patcher=patch_list_item("settings", "endpoint", endpoint, enabled=enabled),
            reconcile_families=(QueryFamily.ENDPOINTS,),
        )
        return await run_optimistic(
            self.cache,
            update,
            lambda: self._request(
                "POST", f"/endpoints/{_segment(endpoint)}/toggle", json={"enabled": enabled}
            ),
            on_error=self._on_error,
        )

    async def toggle_tool(self, tool_id: str, enabled: bool) -> dict[str, Any]:
        update = OptimisticUpdate(
            patch_families=(QueryFamily.ADMIN_TOOLS,),
            patcher=patch_list_item("tools", "toolId", tool_id, enabled=enabled),
            reconcile_families=(QueryFamily.TOOL_VISIBILITY,),
        )
        return await run_optimistic(
            self.cache,
            update,
            lambda: self._request(
                "PATCH", f"/tools/{_segment(tool_id)}/toggle", json={"enabled": enabled}
            ),
            on_error=self._on_error,
        )

    async def toggle_model(
        self,
        endpoint: str,
        model_name: str,
        is_enabled: bool,
        *,
        reason: str | None = None,
    ) -> dict[str, Any]:
        update = OptimisticUpdate(
            patch_families=(QueryFamily.ADMIN_MODELS,),
            patcher=patch_list_item(
                "models", "modelName", model_name, isEnabled=is_enabled, reason=reason
            ),
            reconcile_families=(QueryFamily.MODELS,),
        )
        return await run_optimistic(
            self.cache,
            update,
            lambda: self._request(
                "PUT",
                f"/models/{_segment(endpoint)}/{_segment(model_name)}",
                json={"isEnabled": is_enabled, "reason": reason},
            ),
            on_error=self._on_error,
        )

    # -----------------------------------------------------------------------
    # Reconcile-only mutations
    # -----------------------------------------------------------------------

    async def _reconciled(self, method: str, path: str, **kwargs: Any) -> Any:
        return await run_reconciled(
            self.cache,
            _USER_FAMILIES + _USER_AGGREGATES,
            lambda: self._request(method, path, **kwargs),
            on_error=self._on_error,
        )

    async def create_user(self, **fields: Any) -> dict[str, Any]:
        """POST /users. Field names are camelCase JSON keys."""
        return await self._reconciled("POST", "/users", json=fields)

    async def update_user(self, user_id: uuid.UUID | str, **fields: Any) -> dict[str, Any]:
        """PUT /users/{id} with name and/or membershipExpiresAt."""
        return await self._reconciled("PUT", f"/users/{user_id}", json=fields)

    async def reset_password(self, user_id: uuid.UUID | str, password: str) -> dict[str, Any]:
        return await self._reconciled(
            "PUT", f"/users/{user_id}/password", json={"password": password}
        )

    async def delete_user(self, user_id: uuid.UUID | str) -> dict[str, Any]:
        result = await run_reconciled(
            self.cache,
            (QueryFamily.ADMIN_USERS, *_USER_AGGREGATES),
            lambda: self._request("DELETE", f"/users/{user_id}"),
            on_error=self._on_error,
        )
        self.cache.discard(QueryKey.of(QueryFamily.ADMIN_USER, user_id=str(user_id)))
        return result

    async def add_to_organization(
        self,
        *,
        user_id: uuid.UUID | str | None = None,
        organization_id: uuid.UUID | str | None = None,
        email: str | None = None,
    ) -> dict[str, Any]:
        """POST /users/organization/add (by id for global admins, by email otherwise)."""
        body = {
            "userId": str(user_id) if user_id else None,
            "organizationId": str(organization_id) if organization_id else None,
            "email": email,
        }
        return await self._reconciled(
            "POST",
            "/users/organization/add",
            json={k: v for k, v in body.items() if v is not None},
        )

    async def remove_from_organization(self, user_id: uuid.UUID | str) -> dict[str, Any]:
        return await self._reconciled(
            "POST", "/users/organization/remove", json={"userId": str(user_id)}
        )
