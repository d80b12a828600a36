from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from .errors import ComponentResolutionFailure
from .models import PropertyValue

logger = logging.getLogger(__name__)


@dataclass
class ResolutionTask:
    component_name: str
    raw_properties: Dict[str, Any] = field(default_factory=dict)
    # None when no descriptor could be found for the component type.
    descriptor_properties: Optional[List[Dict[str, Any]]] = None


def resolve_properties(
    component_name: str,
    raw_properties: Dict[str, Any],
    descriptor_properties: Optional[List[Dict[str, Any]]],
) -> List[PropertyValue]:
    """
    Merge authored property values into the descriptor's property schema.

    The result follows the descriptor's declared order. Properties the
    author never set are filled with the descriptor default and carry the
    editor type so consumers can tell them apart.
    """
    if descriptor_properties is None:
        raise ComponentResolutionFailure(component_name, "no descriptor for component type")
    if not isinstance(descriptor_properties, list):
        raise ComponentResolutionFailure(component_name, "descriptor properties are not a list")

    resolved: List[PropertyValue] = []
    for prop in descriptor_properties:
        if not isinstance(prop, dict) or "name" not in prop:
            raise ComponentResolutionFailure(component_name, f"malformed property descriptor {prop!r}")
        name = prop["name"]
        if name in raw_properties:
            resolved.append(PropertyValue(name=name, value=raw_properties[name]))
        else:
            resolved.append(
                PropertyValue(name=name, value=prop.get("defaultValue"), editor_type=prop.get("editorType"))
            )
    return resolved


class PropertyResolverPool:
    """
    Bounded executor reused for every property resolution of an ingestion.

    Each task receives its own deep copy of its inputs, so resolutions never
    share mutable state. ``mode="process"`` moves the work to worker
    processes; the default thread mode avoids pickling for small projects.
    """

    def __init__(self, max_workers: int = 4, mode: str = "thread"):
        if mode not in ("thread", "process"):
            raise ValueError(f"Unknown resolver mode: {mode}")
        self.max_workers = max_workers
        self.mode = mode
        if mode == "process":
            self._executor: Executor = ProcessPoolExecutor(max_workers=max_workers)
        else:
            self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="property-resolver")

    async def resolve(self, task: ResolutionTask) -> List[PropertyValue]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            resolve_properties,
            task.component_name,
            deepcopy(task.raw_properties),
            deepcopy(task.descriptor_properties),
        )

    async def resolve_many(
        self, tasks: Sequence[ResolutionTask]
    ) -> List[Union[List[PropertyValue], BaseException]]:
        """
        Scatter one resolution per task and gather the results in task order.
        Failures come back as exception objects in place of a result.
        """
        results = await asyncio.gather(*(self.resolve(task) for task in tasks), return_exceptions=True)
        failed = sum(1 for r in results if isinstance(r, BaseException))
        logger.debug("Resolved properties for %d components (%d failed)", len(tasks), failed)
        return list(results)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "PropertyResolverPool":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()
