"""Logic components deployable behind a proxy front."""

from proxyfront.logic.base import LogicComponent, external
from proxyfront.logic.counter import CounterV1, CounterV2

BUILTIN_LOGIC = {
    CounterV1.VERSION: CounterV1,
    CounterV2.VERSION: CounterV2,
}

__all__ = ["LogicComponent", "external", "CounterV1", "CounterV2", "BUILTIN_LOGIC"]
