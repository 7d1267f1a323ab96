"""Terse per-item progress symbols on stdout.

``.`` is a crawled repo, ``,`` a crawled user and ``X`` a failure.
"""

from __future__ import annotations

import sys
from typing import TextIO

REPO_SYMBOL = "."
USER_SYMBOL = ","
FAIL_SYMBOL = "X"


class ProgressPrinter:
    def __init__(self, enabled: bool = True, stream: TextIO | None = None) -> None:
        self.enabled = enabled
        self._stream = stream

    def success(self, is_repo: bool) -> None:
        self._emit(REPO_SYMBOL if is_repo else USER_SYMBOL)

    def failure(self) -> None:
        self._emit(FAIL_SYMBOL)

    def _emit(self, symbol: str) -> None:
        if not self.enabled:
            return
        stream = self._stream or sys.stdout
        stream.write(symbol)
        stream.flush()
