"""Spendwise REST API client (the group data store)."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx

from ..exceptions import SpendwiseAPIError
from ..models import Expense, ExpenseShare, GroupSnapshot, Member, Settlement

logger = logging.getLogger(__name__)


def _ref_id(value: Any) -> str:
    """Normalize an id that may be a number, a string or an embedded object."""
    if isinstance(value, dict):
        value = value.get("id", value.get("_id"))
    return str(value)


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _unwrap(data: Any, key: str) -> dict[str, Any]:
    """Responses carry the record either bare or under a key like 'settlement'."""
    if isinstance(data, dict) and isinstance(data.get(key), dict):
        return data[key]
    return data


def parse_member(data: dict[str, Any]) -> Member:
    """Parse a member payload."""
    return Member(
        id=_ref_id(data.get("id", data.get("_id", data.get("memberId")))),
        display_name=data.get("displayName") or data.get("name") or "",
    )


def parse_expense(data: dict[str, Any]) -> Expense:
    """Parse an expense payload, including its per-member shares."""
    shares = [
        ExpenseShare(
            member_id=_ref_id(share["memberId"]),
            amount=Decimal(str(share["amount"])),
        )
        for share in data.get("shares", [])
    ]
    return Expense(
        id=_ref_id(data.get("id", data.get("_id"))),
        description=data.get("description", ""),
        amount=Decimal(str(data["amount"])),
        category=data.get("category") or "Other",
        paid_by=_ref_id(data["paidBy"]),
        shares=shares,
        date=_parse_datetime(data.get("date")),
    )


def parse_settlement(data: dict[str, Any]) -> Settlement:
    """Parse a settlement payload."""
    group_id = data.get("groupId")
    return Settlement(
        id=_ref_id(data.get("id", data.get("_id"))),
        group_id=_ref_id(group_id) if group_id is not None else None,
        from_member_id=_ref_id(data["fromMemberId"]),
        to_member_id=_ref_id(data["toMemberId"]),
        amount=Decimal(str(data["amount"])),
        note=data.get("note") or None,
        settled_at=_parse_datetime(data.get("settledAt")),
    )


class SpendwiseClient:
    """Client for the Spendwise group expense API."""

    DEFAULT_BASE_URL = "http://localhost:4000/api"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        access_token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the Spendwise client."""
        headers = {"Content-Type": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        self.client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and return the decoded JSON body."""
        try:
            response = self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Spendwise API error: {e}")
            logger.error(f"Response body: {e.response.text}")
            message = e.response.reason_phrase
            try:
                body = e.response.json()
                if isinstance(body, dict) and body.get("message"):
                    message = body["message"]
            except ValueError:
                pass
            raise SpendwiseAPIError(
                f"{method} {path} failed ({e.response.status_code}): {message}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise SpendwiseAPIError(f"{method} {path} failed: {e}") from e

        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_groups(self) -> list[dict[str, Any]]:
        """List the groups the authenticated user belongs to."""
        data = self._request("GET", "/groups")
        if isinstance(data, dict):
            data = data.get("groups", [])
        return list(data or [])

    def get_snapshot(self, group_id: str) -> GroupSnapshot:
        """
        Fetch members, expenses and settlements of a group in one request.

        A single read keeps the three lists consistent with each other, so
        balances derived from the snapshot always reference known members
        (barring server-side data problems).

        Args:
            group_id: The Spendwise group ID

        Returns:
            GroupSnapshot for the group
        """
        data = self._request("GET", f"/groups/{group_id}/summary") or {}

        group = data.get("group") or {}
        snapshot = GroupSnapshot(
            group_id=str(group_id),
            name=group.get("name"),
            members=[parse_member(m) for m in data.get("members", [])],
            expenses=[parse_expense(e) for e in data.get("expenses", [])],
            settlements=[
                parse_settlement(s) for s in data.get("settlementsHistory", [])
            ],
        )

        logger.debug(
            f"Group {group_id}: {len(snapshot.members)} members, "
            f"{len(snapshot.expenses)} expenses, "
            f"{len(snapshot.settlements)} settlements"
        )
        return snapshot

    def list_members(self, group_id: str) -> list[Member]:
        """List the members of a group."""
        return self.get_snapshot(group_id).members

    def list_expenses(self, group_id: str, category: str | None = None) -> list[Expense]:
        """List a group's expenses, optionally only one category."""
        expenses = self.get_snapshot(group_id).expenses
        if category is not None:
            expenses = [e for e in expenses if e.category == category]
        return expenses

    def list_settlements(self, group_id: str) -> list[Settlement]:
        """List the recorded settlements of a group."""
        return self.get_snapshot(group_id).settlements

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_settlement(
        self,
        group_id: str,
        from_member_id: str,
        to_member_id: str,
        amount: Decimal,
        note: str | None = None,
    ) -> Settlement:
        """
        Record a payment between two members.

        Settlements are append-only; there is no update or delete.

        Args:
            group_id: The Spendwise group ID
            from_member_id: Member who paid
            to_member_id: Member who received the money
            amount: Amount paid
            note: Optional note, e.g. "Settlement for Food"

        Returns:
            The recorded Settlement
        """
        payload: dict[str, Any] = {
            "groupId": group_id,
            "fromMemberId": from_member_id,
            "toMemberId": to_member_id,
            "amount": float(amount),
        }
        if note:
            payload["note"] = note

        logger.debug(f"Recording settlement: {payload}")
        data = self._request("POST", "/groups/settlement", json=payload)
        record = _unwrap(data, "settlement")
        record.setdefault("groupId", group_id)
        return parse_settlement(record)

    def add_expense(
        self,
        group_id: str,
        description: str,
        amount: Decimal,
        category: str,
        paid_by: str,
        shares: list[ExpenseShare],
    ) -> Expense:
        """Add an expense to a group."""
        payload = {
            "groupId": group_id,
            "description": description,
            "amount": float(amount),
            "category": category,
            "paidBy": paid_by,
            "shares": [
                {"memberId": share.member_id, "amount": float(share.amount)}
                for share in shares
            ],
        }
        data = self._request("POST", "/groups/expense", json=payload)
        return parse_expense(_unwrap(data, "expense"))

    def add_member(self, group_id: str, display_name: str) -> Member:
        """Add a member to a group."""
        data = self._request(
            "POST",
            "/groups/member",
            json={"groupId": group_id, "displayName": display_name},
        )
        return parse_member(_unwrap(data, "member"))

    def delete_member(self, member_id: str) -> None:
        """
        Remove a member.

        The server refuses if the member still has shares or settlements.
        """
        self._request("DELETE", f"/groups/member/{member_id}")
