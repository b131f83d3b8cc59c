"""
Ledger persistence client.

Marks ledger entries as reconciled through a PostgREST-style REST API. The
update is conditional on the entry still being unreconciled, so an entry that
was reconciled by another process surfaces as a conflict.
"""

from dataclasses import replace
from datetime import datetime
from typing import Optional, Dict, Any

import httpx
import structlog

from ..config import Settings, get_settings
from ..models import LedgerEntry

logger = structlog.get_logger()


class LedgerError(Exception):
    """Custom exception for ledger API errors."""
    def __init__(self, message: str, status_code: int = 0, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class LedgerConflictError(LedgerError):
    """The entry is missing or was already reconciled elsewhere."""


class LedgerClient:
    """
    Client for the ledger REST API.
    Each call is an independent update; there is no batch or transaction.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = self.settings.ledger_api_url
        self.api_key = self.settings.ledger_api_key
        self.table = self.settings.ledger_table
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {
                "Content-Type": "application/json",
                "Prefer": "return=representation",
            }
            if self.api_key:
                headers["apikey"] = self.api_key
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.settings.ledger_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def mark_reconciled(
        self,
        entry: LedgerEntry,
        reference: str,
        reconciled_at: Optional[datetime] = None,
    ) -> LedgerEntry:
        """
        Mark a ledger entry as reconciled against a bank line.

        Args:
            entry: The ledger entry to update
            reference: Bank line id stored as the reconciliation reference
            reconciled_at: Timestamp of the reconciliation (defaults to now)

        Returns:
            The entry as persisted, with reconciled=True

        Raises:
            LedgerConflictError: entry missing or already reconciled
            LedgerError: any other persistence failure
        """
        reconciled_at = reconciled_at or datetime.utcnow()
        client = await self._get_client()

        payload = {
            "is_reconciled": True,
            "reconciled_at": reconciled_at.isoformat(),
            "bank_statement_ref": reference,
        }
        params = {
            "id": f"eq.{entry.id}",
            "is_reconciled": "eq.false",
        }

        try:
            response = await client.patch(f"/rest/v1/{self.table}", params=params, json=payload)
        except httpx.TimeoutException:
            raise LedgerError("Ledger request timeout")
        except httpx.RequestError as e:
            raise LedgerError(f"Ledger request error: {str(e)}")

        if response.status_code == 409:
            raise LedgerConflictError(
                f"Ledger entry {entry.id} conflicts with a concurrent update",
                status_code=409,
                details=response.text,
            )

        if response.status_code >= 400:
            error_detail = response.text
            try:
                error_detail = response.json()
            except ValueError:
                pass
            raise LedgerError(
                f"Ledger API error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        rows = self._decode_rows(response)
        if not rows:
            raise LedgerConflictError(
                f"Ledger entry {entry.id} not found or already reconciled",
                status_code=response.status_code,
            )

        persisted = self._merge(entry, rows[0], reference, reconciled_at)
        logger.debug("Ledger entry reconciled", ledger_entry_id=entry.id, reference=reference)
        return persisted

    def _decode_rows(self, response: httpx.Response) -> list:
        if response.status_code == 204 or not response.content:
            return []
        try:
            body = response.json()
        except ValueError:
            raise LedgerError("Ledger API returned a non-JSON body", details=response.text)
        if isinstance(body, dict):
            return [body]
        return list(body)

    def _merge(
        self,
        entry: LedgerEntry,
        row: Dict[str, Any],
        reference: str,
        reconciled_at: datetime,
    ) -> LedgerEntry:
        """Apply the reconciliation fields, keeping the server's reference if it echoed one."""
        return replace(
            entry,
            reconciled=True,
            reconciled_at=reconciled_at,
            reconciliation_ref=row.get("bank_statement_ref") or reference,
        )
