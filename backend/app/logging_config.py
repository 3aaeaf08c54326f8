import logging
import time
from contextlib import contextmanager
from typing import Dict, Union

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

log = logging.getLogger("listing-agent")

MetricValue = Union[int, float]
_metrics: Dict[str, MetricValue] = {}


def inc_metric(name: str, amount: int = 1) -> None:
    _metrics[name] = int(_metrics.get(name, 0)) + amount


def set_metric(name: str, value: MetricValue) -> None:
    _metrics[name] = value


def get_metrics_snapshot() -> Dict[str, MetricValue]:
    return dict(_metrics)


def reset_metrics() -> None:
    _metrics.clear()


@contextmanager
def measure(name: str):
    """Log wall time of the block and keep the last value as a metric."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        log.info("%s took %.1fms", name, elapsed_ms)
        _metrics[f"time_ms_last_{name}"] = round(elapsed_ms, 1)
