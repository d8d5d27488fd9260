"""Client-side chat and matchmaking sync engine for the WhoAmI app."""

__version__ = "0.1.0"
