"""
Client for the remote matcher that proposes bank line / ledger entry pairings.

The scoring itself happens remotely; this client only ships the statement lines
and the ledger query window, and normalises the response.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Dict, Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import Settings, get_settings
from ..models import Direction, LedgerEntry, Statement, to_cents

logger = structlog.get_logger()


class MatcherError(Exception):
    """Custom exception for matcher API errors."""
    def __init__(self, message: str, status_code: int = 0, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class MatcherUnavailableError(MatcherError):
    """Transient failure (network, timeout, 5xx). Retried."""


@dataclass
class RawSuggestion:
    """One matcher suggestion before it becomes a match candidate."""
    bank_line_id: str
    ledger_entry_id: Optional[str] = None
    confidence: float = 0.0
    rationale: str = ""


@dataclass
class MatcherResponse:
    """Normalised matcher response."""
    suggestions: List[RawSuggestion] = field(default_factory=list)
    ledger_entries: List[LedgerEntry] = field(default_factory=list)


def parse_date(value: Any) -> Optional[date]:
    """Parse an ISO date or datetime string into a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return date.fromisoformat(text[:10])


def parse_ledger_entry(data: Dict[str, Any]) -> LedgerEntry:
    """Parse a ledger entry from the matcher or ledger API payload."""
    direction = str(data.get("direction", "")).upper()
    try:
        parsed_direction = Direction(direction)
    except ValueError:
        raise MatcherError(
            f"Unknown ledger entry direction: {direction!r}",
            details=data,
        )

    return LedgerEntry(
        id=str(data["id"]),
        description=data.get("description") or "",
        amount_cents=abs(to_cents(data.get("amount", 0) or 0)),
        direction=parsed_direction,
        due_date=parse_date(data.get("dueDate") or data.get("due_date")),
        paid_date=parse_date(data.get("paidDate") or data.get("paid_at")),
        reconciled=bool(data.get("reconciled") or data.get("is_reconciled") or False),
        reconciliation_ref=data.get("reference") or data.get("bank_statement_ref"),
        raw_data=dict(data),
    )


class MatcherClient:
    """
    Client for the remote matcher function.
    Handles authentication, retries on transient failures and response parsing.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.url = self.settings.matcher_url
        self.api_key = self.settings.matcher_api_key
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=self.settings.matcher_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "MatcherClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @retry(
        retry=retry_if_exception_type(MatcherUnavailableError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST to the matcher and return the decoded JSON body."""
        client = await self._get_client()

        try:
            response = await client.post(self.url, json=payload)
        except httpx.TimeoutException:
            raise MatcherUnavailableError("Matcher request timeout")
        except httpx.RequestError as e:
            raise MatcherUnavailableError(f"Matcher request error: {str(e)}")

        if response.status_code == 429:
            raise MatcherError(
                "Rate limit exceeded. Please try again later.",
                status_code=429,
            )

        if response.status_code == 402:
            raise MatcherError(
                "Payment required. Matcher credits exhausted.",
                status_code=402,
            )

        if response.status_code >= 500:
            raise MatcherUnavailableError(
                f"Matcher error: {response.status_code}",
                status_code=response.status_code,
                details=response.text,
            )

        if response.status_code >= 400:
            error_detail = response.text
            try:
                error_detail = response.json()
            except ValueError:
                pass
            raise MatcherError(
                f"Matcher error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        try:
            body = response.json()
        except ValueError:
            raise MatcherError("Matcher returned a non-JSON body", details=response.text)

        if not isinstance(body, dict):
            raise MatcherError("Malformed matcher response", details=body)

        if body.get("error"):
            raise MatcherError(str(body["error"]), details=body)

        return body

    async def suggest(self, statement: Statement, account_ref: str) -> MatcherResponse:
        """
        Ask the matcher for pairings between statement lines and ledger entries.

        Args:
            statement: Parsed statement whose lines are to be matched
            account_ref: Ledger account the statement belongs to

        Returns:
            MatcherResponse with raw suggestions and every ledger entry considered
        """
        payload = {
            "bankLines": [line.to_dict() for line in statement.transactions],
            "accountRef": account_ref,
            "startDate": statement.start_date.isoformat(),
            "endDate": statement.end_date.isoformat(),
        }

        logger.info(
            "Requesting match suggestions",
            account_ref=account_ref,
            lines=len(statement.transactions),
            start_date=payload["startDate"],
            end_date=payload["endDate"],
        )

        body = await self._post(payload)
        response = self._parse_response(body)

        logger.info(
            "Match suggestions received",
            suggestions=len(response.suggestions),
            ledger_entries=len(response.ledger_entries),
        )

        return response

    def _parse_response(self, body: Dict[str, Any]) -> MatcherResponse:
        """Parse the matcher body into suggestions and considered ledger entries."""
        raw_suggestions = body.get("suggestions")
        raw_entries = body.get("ledgerEntriesConsidered")
        if raw_entries is None:
            raw_entries = body.get("systemTransactions")

        if not isinstance(raw_suggestions, list) or not isinstance(raw_entries, list):
            raise MatcherError("Malformed matcher response", details=body)

        try:
            ledger_entries = [parse_ledger_entry(item) for item in raw_entries]
            suggestions = [self._parse_suggestion(item) for item in raw_suggestions]
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise MatcherError(f"Malformed matcher response: {str(e)}", details=body)

        return MatcherResponse(suggestions=suggestions, ledger_entries=ledger_entries)

    def _parse_suggestion(self, data: Dict[str, Any]) -> RawSuggestion:
        bank_line = data.get("bankLine") or data.get("ofxTransaction") or {}
        bank_line_id = (
            data.get("bankLineId")
            or bank_line.get("id")
            or bank_line.get("fitId")
        )
        if not bank_line_id:
            raise KeyError("bankLine.id")

        entry = data.get("ledgerEntry") or data.get("systemTransaction")
        entry_id = data.get("ledgerEntryId") or (entry.get("id") if entry else None)

        return RawSuggestion(
            bank_line_id=str(bank_line_id),
            ledger_entry_id=str(entry_id) if entry_id else None,
            confidence=float(data.get("confidence") or 0),
            rationale=data.get("rationale") or data.get("reason") or "",
        )
