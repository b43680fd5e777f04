from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Upload progress display with tqdm (TTY only).

The coordinator reports whole percentages; ``UploadProgressBar`` is a callable
that moves a 0-100 bar to the reported value. Outside a TTY (CI, piped
output) no bar is created.
"""

__all__ = [
    "UploadProgressBar",
    "is_tty_enabled",
    "scaled_progress",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


def scaled_progress(callback: Any, start: int, end: int) -> Any:
    """Map a 0-100 progress callback onto the ``start``-``end`` slice of another.

    Used when one file feeds two uploads (ecommerce sales then returns).
    """
    if callback is None:
        return None

    def report(percent: int) -> None:
        callback(start + (end - start) * percent // 100)

    return report


class UploadProgressBar:
    """Percentage bar for one upload.

    Usage::

        with UploadProgressBar("sales") as bar:
            await coordinator.upload_in_batches(records, on_progress=bar)
    """

    def __init__(self, description: str = "Uploading") -> None:
        self.description = description
        self.current = 0
        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=100,
                desc=description,
                unit="%",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def __call__(self, percent: int) -> None:
        percent = max(0, min(100, int(percent)))
        if percent <= self.current:
            return
        if self.pbar is not None:
            self.pbar.update(percent - self.current)
        self.current = percent

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> UploadProgressBar:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
