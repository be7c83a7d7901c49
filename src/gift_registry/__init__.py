"""Gift Registry: collaborative claims, assignments and live inventory events."""

__version__ = "0.1.0"
