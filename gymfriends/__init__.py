"""Client-side friendship state cache and realtime sync for the gym app."""

__version__ = "0.1.0"
