"""
AgriChain Developer Launcher

Starts the local blockchain network, deploys the contract, patches the server
configuration, seeds demo data and launches the backend server as one
supervised run.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
