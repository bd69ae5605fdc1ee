"""Operator alert providers for backorder limit breaches."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol


class AlertProvider(Protocol):
    async def send(self, *, recipient: str, subject: str, body: str) -> None: ...


@dataclass(slots=True)
class SentAlert:
    recipient: str
    subject: str
    body: str


class InMemoryAlertProvider:
    """Keeps delivered alerts in memory so operators and tests can inspect them."""

    def __init__(self) -> None:
        self.sent: List[SentAlert] = []

    async def send(self, *, recipient: str, subject: str, body: str) -> None:
        self.sent.append(SentAlert(recipient=recipient, subject=subject, body=body))


def limit_exceeded_message(*, item_name: str, sold: int, limit: int) -> tuple[str, str]:
    subject = "Backorder Limit Exceeded"
    body = (
        f"The backorder limit for {item_name} has been exceeded. "
        f"Current Sold: {sold}, Limit: {limit}."
    )
    return subject, body
