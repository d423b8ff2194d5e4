"""Client, browser wallet, proof-of-work join and CLPA partitioning for a sharded blockchain network."""

__version__ = "0.1.0"