from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display for commit batches (tqdm, TTY only).

In non-TTY environments (CI, redirected output) no bar is created, so the
labeled log lines stay clean.
"""

__all__ = [
    "is_tty_enabled",
    "UpdateProgress",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class UpdateProgress:
    """Progress bar over prepared updates, advanced once per finished batch.

    Its ``on_batch`` method is the callback expected by ``commit_updates``.
    """

    def __init__(self, total_updates: int, *, description: str = "Updating items") -> None:
        self.total_updates = total_updates
        self.description = description
        self.done = 0
        self.failed = 0

        self.enabled = is_tty_enabled() and total_updates > 0
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_updates,
                desc=description,
                unit="item",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def on_batch(self, size: int, failed: int, elapsed_seconds: float) -> None:
        self.done += size
        self.failed += failed
        if self.pbar is not None:
            self.pbar.update(size)
            self.pbar.set_postfix(failed=self.failed, batch_sec=f"{elapsed_seconds:.2f}")

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> UpdateProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
