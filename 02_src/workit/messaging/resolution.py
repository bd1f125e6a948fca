"""Tagged result of resolving a user's messaging state across tiers."""

from dataclasses import dataclass
from enum import Enum


class LoadSource(str, Enum):
    """Tier whose data the message store holds after loading."""

    REMOTE = "remote"
    LOCAL = "local"
    DEMO = "demo"


@dataclass
class LoadResult:
    """Outcome of MessageStore.load_for_user."""

    source: LoadSource
    conversations: int
    messages: int
    remote_reachable: bool = False
