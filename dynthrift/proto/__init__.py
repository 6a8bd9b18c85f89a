"""Binary protocol runtime: wire codec, transports and the dynamic client."""

from .binary import ApplicationExceptionType as ApplicationExceptionType
from .binary import BinaryProtocol as BinaryProtocol
from .binary import MessageType as MessageType
from .binary import TType as TType
from .client import Client as Client
from .client import SessionState as SessionState
from .codec import Codec as Codec
from .errors import *
from .service import Service as Service
from .transport import MemoryTransport as MemoryTransport
from .transport import SocketTransport as SocketTransport
from .transport import TransportError as TransportError
