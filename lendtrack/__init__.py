"""Corporate device lending tracker: lifecycle service, rental history and API."""

__version__ = "0.1.0"
