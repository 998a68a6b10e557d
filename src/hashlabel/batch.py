from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional

from .errors import EXIT_OK, HashLabelError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    path: Path
    ok: bool
    result: Any = None
    error: HashLabelError | None = None


@dataclass
class BatchReport:
    outcomes: List[Outcome] = field(default_factory=list)
    halted: bool = False

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def failures(self) -> List[Outcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def exit_code(self) -> int:
        for o in self.outcomes:
            if o.error is not None:
                return o.error.exit_code
        return EXIT_OK


def run_batch(
    operation: Callable[[Path], Any],
    paths: Iterable[Any],
    keep_going: bool = False,
    on_outcome: Optional[Callable[[Outcome], None]] = None,
) -> BatchReport:
    """Apply `operation` to each path in order, one at a time.

    Domain errors become failed outcomes. By default the batch stops at the
    first one; `keep_going` processes the remaining paths anyway.
    """

    report = BatchReport()
    for raw in paths:
        p = Path(raw)
        try:
            o = Outcome(p, True, result=operation(p))
        except HashLabelError as e:
            log.debug("%s failed: %s", p, e)
            o = Outcome(p, False, error=e)

        report.outcomes.append(o)
        if on_outcome is not None:
            on_outcome(o)
        if not o.ok and not keep_going:
            report.halted = True
            break
    return report
