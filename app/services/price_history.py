"""Bucketed price history for a single token.

Ledger events in the period are replayed forward from a zero state and
grouped into UTC hour or day buckets. Burn payouts come from a
``BurnCollateralEstimator``; callers pass ``RecordedPayoutEstimator`` so a
stored payout is used and only unrecorded burns are priced at the running state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Literal, Optional, Sequence

from app.schemas.normalized import EventKind, TransactionEvent
from app.services.history_replay import DEFAULT_ESTIMATOR, BurnCollateralEstimator
from app.services.pricing import compute_price

Period = Literal["7d", "30d", "all"]
Interval = Literal["hour", "day"]

PERIOD_LENGTHS: Dict[str, Optional[timedelta]] = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "all": None,
}


@dataclass
class _Bucket:
    timestamp: int
    prices: List[float] = field(default_factory=list)
    volumes: List[float] = field(default_factory=list)
    tvls: List[float] = field(default_factory=list)


@dataclass(frozen=True)
class HistoryPoint:
    timestamp: int
    price: float
    volume: float
    tvl: float


def period_start(period: Period, now: datetime) -> datetime:
    length = PERIOD_LENGTHS.get(period, PERIOD_LENGTHS["7d"])
    if length is None:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    return now - length


def bucket_key(moment: datetime, interval: Interval) -> str:
    moment = moment.astimezone(timezone.utc)
    if interval == "hour":
        return moment.strftime("%Y-%m-%dT%H:00:00")
    return moment.strftime("%Y-%m-%d")


def build_price_history(
    events_oldest_first: Sequence[TransactionEvent],
    current_price: float,
    current_tvl: float,
    now: datetime,
    interval: Interval = "hour",
    estimator: BurnCollateralEstimator = DEFAULT_ESTIMATOR,
) -> List[HistoryPoint]:
    running_supply = 0
    running_tvl = 0.0
    buckets: Dict[str, _Bucket] = {}

    for event in events_oldest_first:
        if event.kind is EventKind.MINT:
            volume = event.collateral or 0.0
            running_supply += event.supply_delta
            running_tvl += volume
        else:
            volume = estimator.estimate(event, compute_price(running_tvl, running_supply))
            running_supply -= event.supply_delta
            running_tvl -= volume

        key = bucket_key(event.occurred_at, interval)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = _Bucket(timestamp=int(event.occurred_at.timestamp()))
        bucket.prices.append(compute_price(running_tvl, running_supply))
        bucket.volumes.append(volume)
        bucket.tvls.append(running_tvl)

    history = [
        HistoryPoint(
            timestamp=b.timestamp,
            price=sum(b.prices) / len(b.prices),
            volume=sum(b.volumes),
            tvl=sum(b.tvls) / len(b.tvls),
        )
        for b in sorted(buckets.values(), key=lambda b: b.timestamp)
    ]

    now_ts = int(now.timestamp())
    if not history or history[-1].timestamp < now_ts - 3600:
        history.append(HistoryPoint(timestamp=now_ts, price=current_price, volume=0.0, tvl=current_tvl))

    return history
