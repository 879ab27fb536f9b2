"""Fan a pull request out to every enabled reviewer and wait for all of them."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from prpanel_core.models import ReviewerOutput, ReviewerSpec
from prpanel_core.runner import DEFAULT_TIMEOUT_SECONDS, ModelCaller, run_reviewer

if TYPE_CHECKING:
    from prpanel_core.models import ChangeContext
    from prpanel_core.utils.context import FileContextResult

logger = logging.getLogger(__name__)


async def run_all(
    context: ChangeContext,
    diff: str,
    specs: list[ReviewerSpec],
    model_caller: ModelCaller,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    file_context: FileContextResult | None = None,
    repo_root: str = ".",
) -> list[ReviewerOutput]:
    """Run every enabled reviewer concurrently.

    Returns one output per enabled reviewer, in configuration order. A slow
    or failing reviewer never cancels or delays the reporting of the others.
    """
    enabled = [spec for spec in specs if spec.enabled]
    if not enabled:
        logger.warning("No reviewers enabled")
        return []

    logger.info("Running %d reviewer(s): %s", len(enabled), ", ".join(s.name for s in enabled))
    outputs = await asyncio.gather(
        *(
            run_reviewer(context, diff, spec, model_caller, timeout, file_context, repo_root)
            for spec in enabled
        )
    )

    failed = [o.name for o in outputs if not o.success]
    if failed:
        logger.warning("%d reviewer(s) failed: %s", len(failed), ", ".join(failed))
    return list(outputs)
