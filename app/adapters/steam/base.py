from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class TicketCheckResult:
	"""Outcome of a ticket check the authority actually answered.

	Attributes:
		valid: Whether the authority accepted the ticket.
		identity: Steam id of the ticket owner (set when valid).
		reason: Authority-supplied reason when rejected.
	"""

	valid: bool
	identity: int | None = None
	reason: str | None = None


class AbstractTicketAuthority(ABC):
	"""Interface for the external authority that validates session tickets."""

	@abstractmethod
	async def check_ticket(self, ticket: bytes, app_id: int) -> TicketCheckResult:
		"""Ask the authority whether ``ticket`` is valid for ``app_id``.

		Args:
			ticket: Hex-encoded session ticket as sent by the game client.
			app_id: Application the ticket must have been issued for.

		Returns:
			TicketCheckResult: valid with identity, or invalid with a reason.

		Raises:
			AuthUnavailableError: If the authority cannot be reached, times out,
				or answers with something that is not a verdict.
		"""
		...

	async def aclose(self) -> None:
		"""Release network resources, if any."""
		return None
