"""Waiting indicator shown between sending a request and the first fragment."""

from __future__ import annotations

from yaspin import yaspin  # type: ignore
from yaspin.spinners import Spinners  # type: ignore

from .ansi import colour_enabled, console


class Spinner:
    """Spinner drawn after *prefix*; *waiting_on* names what is being waited for."""

    def __init__(self, prefix: str = "", waiting_on: str = ""):
        self.prefix = prefix
        self.waiting_on = waiting_on
        self._yaspin = yaspin(
            Spinners.dots,
            text=f"({waiting_on})" if waiting_on else "",
            color="green" if colour_enabled() else None,
            side="right",
        )
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        console.print(self.prefix, end="")
        console.file.flush()
        self._yaspin.start()
        self._running = True

    def stop(self) -> None:
        """Erase the spinner and leave the cursor right after the prefix."""
        if not self._running:
            return
        self._yaspin.stop()
        console.print(f"\r{self.prefix}", end="")
        console.file.flush()
        self._running = False

    def __enter__(self) -> "Spinner":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
