"""blockflow — editing core for a block-based visual graph builder."""

__version__ = "0.1.0"
