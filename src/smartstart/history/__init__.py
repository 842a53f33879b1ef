"""Temperature history: reading trends and historical ramp rates."""

from smartstart.history.ramp import average_ramp_rate, ramp_rate_sample
from smartstart.history.trend import compute_trend, record_reading

__all__ = ["average_ramp_rate", "compute_trend", "ramp_rate_sample", "record_reading"]
