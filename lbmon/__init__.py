"""lbmon: detect partially failed load balancers by probing every address behind a hostname."""

__version__ = "0.1.0"
