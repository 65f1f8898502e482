from typing import Any, List

import models
from ticket_store import TicketStore

RECENT_CHECK_INS = 5


class Dashboard:
    def __init__(self, store: TicketStore):
        self.store = store

    def list_tickets(self) -> List[models.Ticket]:
        return self.store.list_tickets()

    def stats(self) -> dict[str, Any]:
        return {
            "metrics": {
                "total_tickets": self.store.count(),
                "checked_in": self.store.count(is_checked_in=True),
                "verified": self.store.count(status=models.TicketStatus.VERIFIED.value),
                "pending": self.store.count(status=models.TicketStatus.PENDING.value),
                "cancelled": self.store.count(status=models.TicketStatus.CANCELLED.value),
            },
            "recent_check_ins": self.store.recent_check_ins(RECENT_CHECK_INS),
        }
