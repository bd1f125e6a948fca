"""Settings for simulated counterpart replies."""

from dataclasses import dataclass

DEFAULT_RESPONSES = (
    "Thanks for your message.",
    "I'll look into your request.",
    "Your message has been received.",
    "I'll get back to you shortly.",
)


@dataclass
class ReplySettings:
    """How the store fakes a counterpart answering after a send."""

    enabled: bool = True
    probability: float = 0.3
    min_delay: float = 3.0  # seconds
    max_delay: float = 10.0
    responses: tuple[str, ...] = DEFAULT_RESPONSES
    notification_text: str = "You received a new message"

    @classmethod
    def disabled(cls) -> "ReplySettings":
        return cls(enabled=False)
