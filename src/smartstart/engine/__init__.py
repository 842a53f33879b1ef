"""Smart-start scheduling engine."""

from smartstart.engine.scheduler import SmartStartEngine, build_record, humidity_correction

__all__ = ["SmartStartEngine", "build_record", "humidity_correction"]
