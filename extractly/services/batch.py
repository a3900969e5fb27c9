"""Heterogeneous batch runner.

Tasks run one after another in input order; render tasks each start a
browser process, so running them side by side would multiply memory use.
A failing task becomes an error record and the batch moves on.
"""

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from extractly.core.exceptions import UnknownTaskTypeError, ValidationError, format_error
from extractly.core.metrics import batch_tasks_total
from extractly.schemas.extract import TASK_MODELS, CssTask, ExtractionTask, RenderTask, XPathTask
from extractly.services.extraction import ExtractionService

logger = logging.getLogger(__name__)


def parse_task(raw: Any) -> ExtractionTask:
    """Build a typed task from one element of the ``tasks`` array."""
    task_type = raw.get("type") if isinstance(raw, dict) else None
    model = TASK_MODELS.get(task_type) if isinstance(task_type, str) else None
    if model is None:
        raise UnknownTaskTypeError(task_type)

    try:
        return model.model_validate(raw)
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ValidationError(f"Invalid {task_type} task: {fields}") from e


async def run_task(task: ExtractionTask, service: ExtractionService) -> list[str]:
    if isinstance(task, CssTask):
        return await service.css(task.url, task.selector, use_cache=False)
    if isinstance(task, XPathTask):
        return await service.xpath(task.url, task.xpath, use_cache=False)
    if isinstance(task, RenderTask):
        return await service.render(task.url, task.selector, use_cache=False)
    raise UnknownTaskTypeError(getattr(task, "type", None))


async def run_batch(tasks: Any, service: ExtractionService) -> list[dict]:
    """Run every task and return one record per task, in input order.

    Each record echoes the submitted task next to either ``result`` or
    ``error``. Only a ``tasks`` value that is not a list fails the call.
    """
    if not isinstance(tasks, list):
        raise ValidationError("tasks must be an array")

    results: list[dict] = []
    for index, raw in enumerate(tasks):
        task_type = raw.get("type") if isinstance(raw, dict) else None
        label = task_type if isinstance(task_type, str) and task_type in TASK_MODELS else "unknown"
        try:
            task = parse_task(raw)
            result = await run_task(task, service)
        except Exception as e:
            logger.warning(f"Batch task {index} ({label}) failed: {format_error(e)}")
            batch_tasks_total.labels(type=label, status="error").inc()
            results.append({"task": raw, "error": format_error(e)})
            continue

        batch_tasks_total.labels(type=label, status="success").inc()
        results.append({"task": raw, "result": result})

    return results
