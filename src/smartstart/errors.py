"""Error types raised by the smart-start pipeline."""


class SmartStartError(Exception):
    """Base class for smart-start errors."""


class WeatherUnavailable(SmartStartError):
    """Weather fetch failed or returned a malformed payload."""


class MissingThermalState(SmartStartError):
    """No current thermal state row exists for the site."""


class MissingSettings(SmartStartError):
    """No schedule settings row exists for the zone."""


class PersistenceError(SmartStartError):
    """Writing a decision record failed."""
