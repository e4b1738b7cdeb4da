"""Multi-converter job API: file conversions and video fetches behind async jobs."""

__version__ = "2.0.0"
