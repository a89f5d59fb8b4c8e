"""gptcron: drive an on-chain GPT oracle on a recurring schedule."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("gptcron")
except PackageNotFoundError:
    __version__ = "dev"

__all__ = ["__version__"]
