"""Schema compatibility shims.

Some tables and procedures exist in two shapes in the field: the current one
(items referenced by id) and a legacy one (items referenced by name). A
`FallbackChain` tries each known write shape in order and only moves on when
the store rejects the previous one. Once every deployment runs the current
schema the legacy shape can be removed from the chain.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from .errors import StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteShape:
    label: str
    write: Callable[..., Awaitable[Any]]
    # Returns False when the shape cannot express the request at all (e.g. no item id).
    applies: Optional[Callable[..., bool]] = None


class FallbackChain:
    def __init__(self, name: str, *shapes: WriteShape):
        if not shapes:
            raise ValueError("FallbackChain needs at least one shape")
        self.name = name
        self.shapes = shapes

    async def run(self, *args, **kwargs) -> Any:
        last_error: Optional[StoreError] = None
        for shape in self.shapes:
            if shape.applies is not None and not shape.applies(*args, **kwargs):
                continue
            try:
                return await shape.write(*args, **kwargs)
            except StoreError as e:
                logger.warning(f"{self.name}: '{shape.label}' shape rejected by store ({e}), trying next shape")
                last_error = e
        if last_error is None:
            raise StoreError(f"{self.name}: no write shape applies to this request")
        raise last_error
