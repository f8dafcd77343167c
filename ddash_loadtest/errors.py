"""Exceptions raised before a load-test run is allowed to start."""


class ConfigurationError(ValueError):
    """Settings, stages, durations or thresholds that cannot be used.

    Raised at startup only. Failures observed while traffic is flowing are
    recorded as metric samples instead.
    """
