"""Thrift IDL documents."""

from .parser import ValidationError as ValidationError
from .parser import load as load
from .parser import parse as parse
from .types import *
