"""
Guzzoline - usage-cost accounting and work-item progress for agent fleets.

Converts token telemetry into cost figures and rolls up bead state
into progress statistics.
"""

__version__ = "0.1.0"
