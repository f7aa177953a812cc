"""cinestake - resolution and payout engine for movie prediction markets."""

__version__ = "0.1.0"
