"""Transient user notifications (the toast messages of the dashboard)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Protocol

from rich.console import Console
from rich.markup import escape

Level = Literal["success", "error", "info"]


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...


@dataclass
class Notification:
    level: Level
    message: str


@dataclass
class RecordingNotifier:
    """Keeps notifications in memory; used by tests and embedding callers."""

    notifications: List[Notification] = field(default_factory=list)

    def success(self, message: str) -> None:
        self.notifications.append(Notification("success", message))

    def error(self, message: str) -> None:
        self.notifications.append(Notification("error", message))

    def info(self, message: str) -> None:
        self.notifications.append(Notification("info", message))

    def messages(self, level: Level | None = None) -> List[str]:
        return [item.message for item in self.notifications if level is None or item.level == level]


class ConsoleNotifier:
    """Prints notifications with rich styling."""

    _STYLES = {"success": "green", "error": "bold red", "info": "cyan"}

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def _emit(self, level: Level, message: str) -> None:
        self.console.print(f"[{self._STYLES[level]}]{level}[/]: {escape(message)}", highlight=False)

    def success(self, message: str) -> None:
        self._emit("success", message)

    def error(self, message: str) -> None:
        self._emit("error", message)

    def info(self, message: str) -> None:
        self._emit("info", message)


__all__ = ["ConsoleNotifier", "Notification", "Notifier", "RecordingNotifier"]
