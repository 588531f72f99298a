import logging
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

Trigger = Callable[[Any], Any]


class TriggerRegistry:
    """
    Post-processing hooks per table and method.

    A trigger receives the shaped result and returns the result to send.
    It runs inside the response path, so it should stay cheap.
    """

    def __init__(self):
        self._triggers: Dict[Tuple[str, str], Trigger] = {}

    def add(self, table: str, method: str, trigger: Trigger) -> None:
        self._triggers[(table.lower(), method.lower())] = trigger

    def get(self, table: str, method: str) -> Optional[Trigger]:
        return self._triggers.get((table.lower(), method.lower()))

    def apply(self, table: str, method: str, result: Any) -> Any:
        trigger = self.get(table, method)
        if trigger is None:
            return result
        logger.debug(f"Running {method.upper()} trigger for '{table}'")
        return trigger(result)
