"""dynthrift - Thrift RPC client driven by IDL documents at runtime."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("dynthrift")
except PackageNotFoundError:
    __version__ = "(local)"
