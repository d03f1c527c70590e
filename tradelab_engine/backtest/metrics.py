"""NAV curve metrics for simulation runs."""

from datetime import date


class NavCurve:
    """Tracks end-of-day NAV with a monotone running peak.

    Example:
        >>> curve = NavCurve(starting_nav=1_000.0)
        >>> curve.add_point(date(2025, 1, 1), 1_100.0)
        >>> curve.add_point(date(2025, 1, 2), 990.0)
        >>> round(curve.max_drawdown_pct, 2)
        10.0
    """

    def __init__(self, starting_nav: float):
        """Initialize NAV curve.

        Args:
            starting_nav: NAV before the first simulated day (initial capital)
        """
        self.starting_nav = starting_nav
        self.points: list[tuple[date, float]] = []
        self.peak_nav = starting_nav
        self.max_drawdown = 0.0  # fraction of peak

    def add_point(self, day: date, nav: float) -> float:
        """Record one day's NAV.

        Args:
            day: Simulated date
            nav: End-of-day NAV

        Returns:
            That day's drawdown as a fraction of the running peak
        """
        self.points.append((day, nav))
        if nav > self.peak_nav:
            self.peak_nav = nav
        drawdown = (self.peak_nav - nav) / self.peak_nav if self.peak_nav > 0 else 0.0
        if drawdown > self.max_drawdown:
            self.max_drawdown = drawdown
        return drawdown

    @property
    def end_nav(self) -> float:
        if not self.points:
            return self.starting_nav
        return self.points[-1][1]

    @property
    def max_drawdown_pct(self) -> float:
        return self.max_drawdown * 100.0

    def total_return(self) -> tuple[float, float]:
        """Calculate total return.

        Returns:
            Tuple of (total_return_pct, net_profit)
        """
        net_profit = self.end_nav - self.starting_nav
        total_return_pct = (net_profit / self.starting_nav) * 100.0 if self.starting_nav > 0 else 0.0
        return total_return_pct, net_profit
