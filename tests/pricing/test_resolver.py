"""Tests for PriceResolver."""

from datetime import date, timedelta

from conftest import DEST, ITEM, MarketBuilder

from tradelab_engine.pricing.resolver import PriceResolver


class CountingProvider:
    """Wraps a provider and records daily_observations ranges."""

    def __init__(self, inner):
        self.inner = inner
        self.ranges = []
        self.on_fetch = None

    @property
    def calls(self) -> int:
        return len(self.ranges)

    def daily_observations(self, location_ids, item_ids, start, end):
        self.ranges.append((start, end))
        if self.on_fetch is not None:
            self.on_fetch()
        return self.inner.daily_observations(location_ids, item_ids, start, end)


class TestPriceResolver:
    """Test suite for as-of lookups."""

    def test_exact_day(self, market: MarketBuilder) -> None:
        market.set(DEST, ITEM, date(2025, 3, 1), 100.0)
        resolver = PriceResolver(market.provider())
        obs = resolver.resolve(DEST, ITEM, date(2025, 3, 1))
        assert obs is not None
        assert obs.date == date(2025, 3, 1)

    def test_falls_back_to_latest_earlier_day(self, market: MarketBuilder) -> None:
        market.set(DEST, ITEM, date(2025, 2, 20), 90.0)
        market.set(DEST, ITEM, date(2025, 2, 25), 95.0)
        resolver = PriceResolver(market.provider())
        obs = resolver.resolve(DEST, ITEM, date(2025, 3, 1))
        assert obs is not None
        assert obs.date == date(2025, 2, 25)
        assert obs.avg == 95.0

    def test_never_returns_future_rows(self, market: MarketBuilder) -> None:
        market.set(DEST, ITEM, date(2025, 3, 2), 100.0)
        resolver = PriceResolver(market.provider())
        assert resolver.resolve(DEST, ITEM, date(2025, 3, 1)) is None

    def test_stale_observation_is_still_latest(self, market: MarketBuilder) -> None:
        """An old trade with nothing after it is the as-of price."""
        market.set(DEST, ITEM, date(2024, 6, 1), 80.0)
        market.set(DEST, ITEM, date(2025, 1, 1), 100.0)
        resolver = PriceResolver(market.provider())
        obs = resolver.resolve(DEST, ITEM, date(2025, 3, 1))
        assert obs is not None
        assert obs.date == date(2025, 1, 1)
        assert obs.avg == 100.0

    def test_resolve_items_omits_unknown(self, market: MarketBuilder) -> None:
        market.set(DEST, ITEM, date(2025, 2, 28), 100.0)
        resolver = PriceResolver(market.provider())
        result = resolver.resolve_items(DEST, [ITEM, 999], date(2025, 3, 1))
        assert set(result) == {ITEM}

    def test_repeated_lookups_are_cached_and_stable(self, market: MarketBuilder) -> None:
        market.flat(DEST, ITEM, date(2025, 2, 1), date(2025, 2, 28), 100.0)
        provider = CountingProvider(market.provider())
        resolver = PriceResolver(provider)

        first = resolver.resolve(DEST, ITEM, date(2025, 3, 1))
        second = resolver.resolve(DEST, ITEM, date(2025, 3, 1))
        assert first == second
        assert provider.calls == 1

    def test_resolve_many_is_exact_day(self, market: MarketBuilder) -> None:
        start = date(2025, 3, 1)
        market.flat(DEST, ITEM, start, start + timedelta(days=4), 100.0)
        market.drop(DEST, ITEM, start + timedelta(days=2))
        resolver = PriceResolver(market.provider())

        rows = resolver.resolve_many([DEST], [ITEM], start, start + timedelta(days=4))
        assert len(rows) == 4
        assert (DEST, ITEM, start + timedelta(days=2)) not in rows

    def test_later_lookups_fetch_only_new_days(self, market: MarketBuilder) -> None:
        market.flat(DEST, ITEM, date(2025, 2, 1), date(2025, 3, 10), 100.0)
        market.set(DEST, ITEM, date(2025, 3, 5), 120.0)
        provider = CountingProvider(market.provider())
        resolver = PriceResolver(provider)

        assert resolver.resolve(DEST, ITEM, date(2025, 3, 1)).date == date(2025, 3, 1)
        assert resolver.resolve(DEST, ITEM, date(2025, 2, 10)).date == date(2025, 2, 10)
        later = resolver.resolve(DEST, ITEM, date(2025, 3, 5))

        assert later.avg == 120.0
        assert provider.ranges == [
            (date.min, date(2025, 3, 1)),
            (date(2025, 3, 2), date(2025, 3, 5)),
        ]

    def test_provider_fetch_runs_outside_lock(self, market: MarketBuilder) -> None:
        market.set(DEST, ITEM, date(2025, 2, 28), 100.0)
        provider = CountingProvider(market.provider())
        resolver = PriceResolver(provider)
        held = []
        provider.on_fetch = lambda: held.append(resolver._lock.locked())

        assert resolver.resolve(DEST, ITEM, date(2025, 3, 1)) is not None
        assert held == [False]
