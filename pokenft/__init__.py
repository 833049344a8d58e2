"""pokenft: mint and browse PokeNFT tokens on a Substrate ledger from the terminal."""

__version__ = "0.1.0"
