"""
The flagclient module contains the most common top-level entry points for the client library.
"""

from flagclient.version import VERSION

from .client import *
from .config import *
from .context import *
from .evaluation import *

__version__ = VERSION
