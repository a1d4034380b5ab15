from __future__ import annotations

import signal
from contextlib import contextmanager
from typing import Iterator


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt(f"signal {signum}")


@contextmanager
def terminate_as_interrupt() -> Iterator[None]:
    """Deliver SIGTERM as KeyboardInterrupt so ``finally`` cleanup runs."""

    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)
