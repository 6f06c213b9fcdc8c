"""User-facing collaborators: notifications and interactive choices."""

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def info(self, message: str, detail: str | None = None) -> None: ...

    async def warning(self, message: str, detail: str | None = None) -> None: ...

    async def error(
        self, message: str, detail: str | None = None, link: str | None = None
    ) -> None: ...


class Prompter(Protocol):
    async def choose(self, title: str, placeholder: str, options: list[str]) -> str | None:
        """Return the picked option, or None when the prompt is dismissed."""
        ...

    async def confirm(self, question: str) -> bool: ...


class LogNotifier:
    """Notifier used when no UI is attached: everything goes to the log."""

    async def info(self, message: str, detail: str | None = None) -> None:
        logger.info(message if detail is None else f"{message}\n{detail}")

    async def warning(self, message: str, detail: str | None = None) -> None:
        logger.warning(message if detail is None else f"{message}\n{detail}")

    async def error(
        self, message: str, detail: str | None = None, link: str | None = None
    ) -> None:
        parts = [message, detail, f"See {link}" if link else None]
        logger.error("\n".join(p for p in parts if p))
