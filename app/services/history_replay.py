"""Reverse replay of the trailing ledger window.

There is no snapshot store, so the state 24 hours ago is rebuilt by undoing
every mint and burn in the window, newest first, starting from the current
(tvl, supply).

The two legs are not equally reliable:

* Mints record the collateral deposited, so undoing a mint and counting its
  volume is exact.
* Burns do not record the collateral paid out. The payout is estimated as
  ``to_decimal(delta) * price`` where ``price`` is the replay's own price
  just before the burn is undone (the not-yet-undone state), not the final
  current price. The result is self-consistent (forward replay with the same
  estimates lands on the current state) but it is an approximation.

The burn estimate is a pluggable ``BurnCollateralEstimator`` so it can be
replaced once the ledger records payouts.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from app.core.logging import get_logger
from app.schemas.normalized import EventKind, TokenListing, TransactionEvent
from app.services.pricing import compute_price, to_decimal

log = get_logger("history_replay")

REPLAY_WINDOW = timedelta(hours=24)


class BurnCollateralEstimator(ABC):
    """Decides how much collateral a burn returned."""

    @abstractmethod
    def estimate(self, event: TransactionEvent, replay_price: float) -> float:
        ...


class ReplayPriceEstimator(BurnCollateralEstimator):
    """Burn payout = burned amount at the replay price before undoing it."""

    def estimate(self, event: TransactionEvent, replay_price: float) -> float:
        return to_decimal(event.supply_delta) * replay_price


class RecordedPayoutEstimator(BurnCollateralEstimator):
    """Use a recorded payout when the ledger has one, otherwise estimate."""

    def __init__(self, fallback: Optional[BurnCollateralEstimator] = None):
        self.fallback = fallback or ReplayPriceEstimator()

    def estimate(self, event: TransactionEvent, replay_price: float) -> float:
        if event.recorded_payout is not None:
            return event.recorded_payout
        return self.fallback.estimate(event, replay_price)


DEFAULT_ESTIMATOR: BurnCollateralEstimator = ReplayPriceEstimator()


@dataclass(frozen=True)
class ReplayStep:
    """One undone event and the collateral the replay attributed to it."""

    event: TransactionEvent
    collateral: float
    estimated: bool


@dataclass(frozen=True)
class ReplayResult:
    current_price: float
    price_24h_ago: float
    price_change_24h: float
    volume_24h: float
    mint_volume: float
    burn_volume: float
    start_tvl: float
    start_supply: int
    steps: Tuple[ReplayStep, ...] = ()


def replay_token(
    current_tvl: float,
    current_supply: int,
    events_newest_first: Sequence[TransactionEvent],
    estimator: BurnCollateralEstimator = DEFAULT_ESTIMATOR,
) -> ReplayResult:
    """Undo ``events_newest_first`` from the current state.

    Pure function: no I/O and no state shared between calls. A supply that
    reaches zero or below mid-replay prices at 0 instead of raising.
    """
    replay_supply = current_supply
    replay_tvl = current_tvl
    mint_volume = 0.0
    burn_volume = 0.0
    steps: List[ReplayStep] = []

    for event in events_newest_first:
        price_before = compute_price(replay_tvl, replay_supply)

        if event.kind is EventKind.MINT:
            collateral = event.collateral or 0.0
            replay_supply -= event.supply_delta
            replay_tvl -= collateral
            mint_volume += collateral
            steps.append(ReplayStep(event=event, collateral=collateral, estimated=False))
        else:
            collateral = estimator.estimate(event, price_before)
            replay_supply += event.supply_delta
            replay_tvl += collateral
            burn_volume += collateral
            steps.append(ReplayStep(event=event, collateral=collateral, estimated=True))

    current_price = compute_price(current_tvl, current_supply)
    price_24h_ago = compute_price(replay_tvl, replay_supply)

    if price_24h_ago > 0:
        price_change = (current_price - price_24h_ago) / price_24h_ago * 100
    else:
        price_change = 0.0

    return ReplayResult(
        current_price=current_price,
        price_24h_ago=price_24h_ago,
        price_change_24h=price_change,
        volume_24h=mint_volume + burn_volume,
        mint_volume=mint_volume,
        burn_volume=burn_volume,
        start_tvl=replay_tvl,
        start_supply=replay_supply,
        steps=tuple(steps),
    )


def forward_replay(start_tvl: float, start_supply: int, steps: Sequence[ReplayStep]) -> Tuple[float, int]:
    """Re-apply replay steps oldest first; returns (tvl, supply)."""
    tvl, supply = start_tvl, start_supply
    for step in reversed(steps):
        if step.event.kind is EventKind.MINT:
            supply += step.event.supply_delta
            tvl += step.collateral
        else:
            supply -= step.event.supply_delta
            tvl -= step.collateral
    return tvl, supply


def group_events_newest_first(events: Iterable[TransactionEvent]) -> Dict[uuid.UUID, List[TransactionEvent]]:
    """Group events by token, each group sorted newest first.

    Ties on timestamp are broken by insertion order (later insert is newer).
    """
    grouped: Dict[uuid.UUID, List[TransactionEvent]] = defaultdict(list)
    for event in events:
        grouped[event.token_id].append(event)
    for token_events in grouped.values():
        token_events.sort(key=lambda e: (e.occurred_at, e.sequence), reverse=True)
    return dict(grouped)


class LedgerReader(Protocol):
    def events_since(
        self, since: datetime, token_ids: Optional[Sequence[uuid.UUID]] = None
    ) -> List[TransactionEvent]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoryReplayEngine:
    """Attaches 24h price change and volume to priced listings."""

    def __init__(
        self,
        ledger: LedgerReader,
        estimator: BurnCollateralEstimator = DEFAULT_ESTIMATOR,
        window: timedelta = REPLAY_WINDOW,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.ledger = ledger
        self.estimator = estimator
        self.window = window
        self.clock = clock

    def apply(self, listings: List[TokenListing]) -> List[TokenListing]:
        token_ids = [t.id for t in listings if t.id is not None]
        if not token_ids:
            return [t.model_copy(update={"price_change_24h": 0.0, "volume_24h": 0.0}) for t in listings]

        since = self.clock() - self.window
        events = self.ledger.events_since(since, token_ids=token_ids)
        grouped = group_events_newest_first(events)
        log.debug(f"Replaying {len(events)} events across {len(grouped)} tokens since {since.isoformat()}")

        enriched: List[TokenListing] = []
        for listing in listings:
            token_events = grouped.get(listing.id, []) if listing.id is not None else []
            result = replay_token(listing.tvl, listing.total_supply, token_events, self.estimator)
            enriched.append(
                listing.model_copy(
                    update={
                        "price_change_24h": result.price_change_24h,
                        "volume_24h": result.volume_24h,
                    }
                )
            )
        return enriched
