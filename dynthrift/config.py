"""Client configuration."""

from dataclasses import dataclass

from dataclasses_json import DataClassJsonMixin

from .proto.transport import DEFAULT_BUFFER_SIZE


@dataclass
class ClientConfig(DataClassJsonMixin):
    """Connection settings for a client.

    ``timeout`` is in seconds and applies to connecting, reading and
    writing. ``None`` waits forever.
    """

    endpoint: str = "localhost:9090"
    service: str | None = None
    timeout: float | None = 5.0
    buffer_size: int = DEFAULT_BUFFER_SIZE


def load_config(path: str) -> ClientConfig:
    """Load a client configuration from a JSON file."""
    with open(path, encoding="utf-8") as f:
        return ClientConfig.from_json(f.read())
