"""Ordered, non-transactional store sequences.

Registering a server is *create, then grant*; unregistering is *revoke, then
drop*. The steps run in declaration order and stop at the first failure.
Nothing is compensated: a failure after the first step raises
``PartialFailureError`` listing what already took effect.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Sequence

from .classifier import sanitize_error_message, to_domain_error
from .errors import PartialFailureError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FederationStep:
    name: str
    action: Callable[[], Any]


def run_steps(operation: str, steps: Sequence[FederationStep]) -> List[Any]:
    """Run ``steps`` in order and return their results."""
    results: List[Any] = []
    completed: List[str] = []
    for step in steps:
        try:
            results.append(step.action())
        except Exception as exc:
            if not completed:
                error = to_domain_error(exc)
                if error is None:
                    raise
                raise error from exc
            cause = to_domain_error(exc) or RuntimeError(sanitize_error_message(str(exc)))
            logger.error(
                "operation=%s step=%s failed after completed_steps=%s: %s",
                operation,
                step.name,
                completed,
                cause,
            )
            raise PartialFailureError(
                operation,
                completed_steps=completed,
                failed_step=step.name,
                cause=cause,
            ) from exc
        completed.append(step.name)
        logger.debug("operation=%s step=%s completed", operation, step.name)
    return results
