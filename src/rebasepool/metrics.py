"""
rebasepool/metrics.py

Prometheus metrics collection for rebasepool.

Exposes pool accounting figures (supply, shares, emission) and counters of
committed pool events.
"""

import time
import logging
from typing import TYPE_CHECKING, Dict, Any

from .config import METRICS_PREFIX, PRECISION
from .events import EVENT_NAMES, PoolEvent, STAKED, WITHDRAWN, REWARD_PAID, REWARD_ADDED

if TYPE_CHECKING:
    from .pool import StakingPool

logger = logging.getLogger("rebasepool.metrics")


class PoolMetricsCollector:
    """
    Prometheus metrics collector for a StakingPool.

    Usage:
        metrics = PoolMetricsCollector(pool)
        pool.events.subscribe(metrics.record_event)

        prometheus_output = metrics.collect()
    """

    # Metric definitions
    METRICS = {
        f"{METRICS_PREFIX}_total_supply": {
            "type": "gauge",
            "help": "Staked asset held by the pool",
        },
        f"{METRICS_PREFIX}_total_shares": {
            "type": "gauge",
            "help": "Shares outstanding",
        },
        f"{METRICS_PREFIX}_share_price": {
            "type": "gauge",
            "help": "Staked asset per share",
        },
        f"{METRICS_PREFIX}_reward_rate": {
            "type": "gauge",
            "help": "Reward units emitted per second",
        },
        f"{METRICS_PREFIX}_reward_per_token": {
            "type": "gauge",
            "help": "Reward-per-token index (fixed point)",
        },
        f"{METRICS_PREFIX}_period_finish_timestamp": {
            "type": "gauge",
            "help": "End of the current emission period",
        },
        f"{METRICS_PREFIX}_accounts": {
            "type": "gauge",
            "help": "Accounts holding shares or unclaimed rewards",
        },
        f"{METRICS_PREFIX}_reward_balance": {
            "type": "gauge",
            "help": "Reward asset held by the pool",
        },
        f"{METRICS_PREFIX}_staked_total": {
            "type": "counter",
            "help": "Total staked asset deposited",
        },
        f"{METRICS_PREFIX}_withdrawn_total": {
            "type": "counter",
            "help": "Total staked asset withdrawn",
        },
        f"{METRICS_PREFIX}_rewards_paid_total": {
            "type": "counter",
            "help": "Total reward asset paid out",
        },
        f"{METRICS_PREFIX}_rewards_notified_total": {
            "type": "counter",
            "help": "Total reward asset notified for emission",
        },
        f"{METRICS_PREFIX}_events_total": {
            "type": "counter",
            "help": "Committed pool events by name",
        },
        f"{METRICS_PREFIX}_uptime_seconds": {
            "type": "counter",
            "help": "Collector uptime in seconds",
        },
    }

    def __init__(self, pool: "StakingPool"):
        """
        Initialize metrics collector.

        Args:
            pool: StakingPool instance to collect metrics from
        """
        self.pool = pool
        self._start_time = time.time()

        # Counters (persist across collections)
        self._staked = 0
        self._withdrawn = 0
        self._rewards_paid = 0
        self._rewards_notified = 0
        self._event_counts: Dict[str, int] = {name: 0 for name in EVENT_NAMES}

    def record_event(self, event: PoolEvent) -> None:
        """Record a committed pool event."""
        self._event_counts[event.name] = self._event_counts.get(event.name, 0) + 1

        if event.name == STAKED:
            self._staked += event.args.get("amount", 0)
        elif event.name == WITHDRAWN:
            self._withdrawn += event.args.get("amount", 0)
        elif event.name == REWARD_PAID:
            self._rewards_paid += event.args.get("reward", 0)
        elif event.name == REWARD_ADDED:
            self._rewards_notified += event.args.get("reward", 0)

    def _share_price(self, total_supply: int, total_shares: int) -> float:
        if total_shares == 0:
            return 1.0
        return total_supply / total_shares

    def collect(self) -> str:
        """
        Collect all metrics and return in Prometheus format.

        Returns:
            Prometheus-formatted metrics string
        """
        lines = []
        labels = {"pool": self.pool.address}

        def add_metric(name: str, value: float, extra: Dict[str, str] = None):
            metric_def = self.METRICS.get(name, {})
            lines.append(f"# HELP {name} {metric_def.get('help', '')}")
            lines.append(f"# TYPE {name} {metric_def.get('type', 'gauge')}")
            all_labels = dict(labels, **(extra or {}))
            label_str = ",".join(f'{k}="{v}"' for k, v in all_labels.items())
            lines.append(f"{name}{{{label_str}}} {value}")

        try:
            total_supply = self.pool.total_supply()
            total_shares = self.pool.total_shares

            add_metric(f"{METRICS_PREFIX}_total_supply", total_supply)
            add_metric(f"{METRICS_PREFIX}_total_shares", total_shares)
            add_metric(f"{METRICS_PREFIX}_share_price", self._share_price(total_supply, total_shares))
            add_metric(f"{METRICS_PREFIX}_reward_rate", self.pool.reward_rate)
            add_metric(f"{METRICS_PREFIX}_reward_per_token", self.pool.reward_per_token())
            add_metric(f"{METRICS_PREFIX}_period_finish_timestamp", self.pool.period_finish)
            add_metric(f"{METRICS_PREFIX}_accounts", len(self.pool.accounts()))
            add_metric(
                f"{METRICS_PREFIX}_reward_balance",
                self.pool.reward_token.balance_of(self.pool.address),
            )

            add_metric(f"{METRICS_PREFIX}_staked_total", self._staked)
            add_metric(f"{METRICS_PREFIX}_withdrawn_total", self._withdrawn)
            add_metric(f"{METRICS_PREFIX}_rewards_paid_total", self._rewards_paid)
            add_metric(f"{METRICS_PREFIX}_rewards_notified_total", self._rewards_notified)

            # Event counters share one HELP/TYPE header
            name = f"{METRICS_PREFIX}_events_total"
            lines.append(f"# HELP {name} {self.METRICS[name]['help']}")
            lines.append(f"# TYPE {name} counter")
            for event_name, count in self._event_counts.items():
                lines.append(f'{name}{{pool="{self.pool.address}",event="{event_name}"}} {count}')

            add_metric(f"{METRICS_PREFIX}_uptime_seconds", time.time() - self._start_time)

        except Exception as e:
            logger.error(f"Error collecting metrics: {e}")
            lines.append(f"# Error collecting metrics: {e}")

        return "\n".join(lines) + "\n"

    def get_stats(self) -> Dict[str, Any]:
        """
        Get metrics as a dictionary (for JSON API).

        Returns:
            Dictionary of metric values
        """
        try:
            return {
                "pool": self.pool.address,
                "total_supply": self.pool.total_supply(),
                "total_shares": self.pool.total_shares,
                "reward_rate": self.pool.reward_rate,
                "reward_per_token": self.pool.reward_per_token(),
                "reward_per_token_decimal": self.pool.reward_per_token() / PRECISION,
                "period_finish": self.pool.period_finish,
                "accounts": len(self.pool.accounts()),
                "staked_total": self._staked,
                "withdrawn_total": self._withdrawn,
                "rewards_paid_total": self._rewards_paid,
                "rewards_notified_total": self._rewards_notified,
                "events": dict(self._event_counts),
                "uptime_seconds": time.time() - self._start_time,
            }
        except Exception as e:
            logger.error(f"Error getting stats: {e}")
            return {"error": str(e)}

    def reset_counters(self) -> None:
        """Reset all counters (useful for testing)."""
        self._staked = 0
        self._withdrawn = 0
        self._rewards_paid = 0
        self._rewards_notified = 0
        self._event_counts = {name: 0 for name in EVENT_NAMES}
