"""Static security audit for Solana Anchor programs."""

__version__ = "0.1.0"
