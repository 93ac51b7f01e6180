"""
Browsing context.

A pagination cache is only valid for one (entity, subscription, dead-letter,
session) combination; any change to these resets it.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class PaginationContext:
    entity_name: str
    subscription: str | None = None
    dead_letter: bool = False
    requires_session: bool = False

    @property
    def display_name(self) -> str:
        """'topic/subscription' or the queue name."""
        if self.subscription:
            return f"{self.entity_name}/{self.subscription}"
        return self.entity_name

    @property
    def queue_kind(self) -> str:
        return "dead letter queue" if self.dead_letter else "queue"
