"""SOF event normalization and laytime/demurrage calculation."""

__version__ = "1.0.0"
