"""Web3 dashboard backend: accounts, projects, portfolios, watchlists and whale tracking."""

__version__ = "0.1.0"
