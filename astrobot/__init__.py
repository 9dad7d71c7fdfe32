"""Voice channel recorder writing one FLAC file per speaker."""

__version__ = "0.1.0"