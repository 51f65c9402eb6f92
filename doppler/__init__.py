"""In-process routing of log and metric envelopes from producers to subscribers."""

__version__ = "0.1.0"