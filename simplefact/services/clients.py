"""Customer management."""

from typing import Any, List, Optional

from simplefact.client.errors import build_error
from simplefact.exceptions import ErrorCode
from simplefact.models import ApiResponse, Client, ClientData, ClientStatus, ClientWebAccessData
from simplefact.services.base import BaseService, Payload


class ClientsService(BaseService):
    """CRUD and lookups for ``/clients``."""

    not_found_code = ErrorCode.CLIENT_NOT_FOUND

    async def list(
        self,
        *,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        search: Optional[str] = None,
        status: Optional[ClientStatus] = None,
        **filters: Any,
    ) -> ApiResponse:
        """List clients.

        Returns the whole envelope so pagination metadata stays available;
        ``data`` holds the parsed clients.
        """
        params = {"page": page, "limit": limit, "search": search, "status": status, **filters}
        response = await self._execute(
            "GET", "/clients", params=params, error_message="Failed to list clients"
        )
        return response.model_copy(update={"data": self._many(response, Client)})

    async def get(self, client_id: int) -> Client:
        response = await self._execute(
            "GET", f"/clients/{client_id}", error_message=f"Failed to get client {client_id}"
        )
        return self._one(response, Client, f"Client with ID {client_id} not found")

    async def create(self, data: Payload) -> Client:
        payload = self._coerce(ClientData, data)
        response = await self._execute(
            "POST", "/clients", self._dump(payload), error_message="Failed to create client"
        )
        return self._one(response, Client, "Client creation returned no data")

    async def update(self, client_id: int, updates: Payload) -> Client:
        body = self._dump(updates)
        if not body:
            raise build_error(ErrorCode.MISSING_FIELD, "No data provided for update")
        response = await self._execute(
            "PUT",
            f"/clients/{client_id}",
            body,
            error_message=f"Failed to update client {client_id}",
        )
        return self._one(response, Client, f"Client with ID {client_id} not found")

    async def delete(self, client_id: int) -> bool:
        await self._execute(
            "DELETE", f"/clients/{client_id}", error_message=f"Failed to delete client {client_id}"
        )
        return True

    async def search(self, query: str, limit: int = 10) -> List[Client]:
        """Search clients by name or e-mail."""
        return (await self.list(search=query, limit=limit)).data

    async def get_active(self, limit: int = 100) -> List[Client]:
        return (await self.list(status="active", limit=limit)).data

    async def get_inactive(self, limit: int = 100) -> List[Client]:
        return (await self.list(status="inactive", limit=limit)).data

    async def set_web_access(self, client_id: int, access: Payload) -> Client:
        """Enable or disable client portal access."""
        payload = self._coerce(ClientWebAccessData, access)
        response = await self._execute(
            "POST",
            f"/clients/{client_id}/web-access",
            self._dump(payload),
            error_message=f"Failed to set web access for client {client_id}",
        )
        return self._one(response, Client, f"Client with ID {client_id} not found")
