"""Coin-metered chat: hosted backend surface and thin client."""
