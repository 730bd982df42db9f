"""PulseWatch: scheduled source monitoring, AI analysis and alerting."""

__version__ = "0.1.0"
