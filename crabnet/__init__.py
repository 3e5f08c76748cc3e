"""CrabNet agent registry: trust subsystem (vouches, reviews, reputation, isnad chains)."""

__version__ = "0.2.0"
