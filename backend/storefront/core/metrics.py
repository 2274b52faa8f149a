from collections import Counter
from threading import Lock
from typing import Dict, Counter as CounterType

_metrics: CounterType[str] = Counter()
_lock = Lock()


def _inc(key: str) -> None:
    with _lock:
        _metrics[key] += 1


def record_coupon_collected() -> None:
    _inc("coupons_collected")


def record_coupon_rejected(reason: str) -> None:
    _inc("coupon_rejections")
    _inc(f"coupon_rejections.{reason}")


def record_order_settled() -> None:
    _inc("orders_settled")


def record_order_replayed() -> None:
    _inc("orders_replayed")


def record_order_code_collision() -> None:
    _inc("order_code_collisions")


def snapshot() -> Dict[str, int]:
    with _lock:
        return dict(_metrics)


def reset() -> None:
    with _lock:
        _metrics.clear()
