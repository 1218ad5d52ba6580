"""Registry endpoint configuration, image tag ordering, logging and metrics for image updates."""

__version__ = "0.1.0"