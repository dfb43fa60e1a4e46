"""SignGate: time-limited, signed access to objects in S3 with HLS playlist rewriting."""

__version__ = "1.0.0"
