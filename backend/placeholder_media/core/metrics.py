from collections import Counter
from threading import Lock
from typing import Counter as CounterType, Dict

_metrics: CounterType[str] = Counter()
_lock = Lock()


def _inc(key: str) -> None:
    with _lock:
        _metrics[key] += 1


def record_proxy_served() -> None:
    _inc("proxy_served")


def record_proxy_upstream_failure() -> None:
    _inc("proxy_upstream_failures")


def record_registry_mutation(success: bool) -> None:
    _inc("registry_mutations" if success else "registry_mutation_failures")


def record_organize_failure() -> None:
    _inc("organize_failures")


def record_folder_fetch_failure() -> None:
    _inc("folder_fetch_failures")


def snapshot() -> Dict[str, int]:
    with _lock:
        return dict(_metrics)


def reset() -> None:
    with _lock:
        _metrics.clear()
