"""Health check module."""

from meluri.health.checker import HealthChecker, HealthStatus

__all__ = ["HealthChecker", "HealthStatus"]
