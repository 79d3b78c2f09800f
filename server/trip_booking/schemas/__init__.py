"""Pydantic schemas for request/response validation."""

from .common import *  # noqa: F403
from .health import *  # noqa: F403
from .inventory import *  # noqa: F403
from .reservation import *  # noqa: F403
from .trip import *  # noqa: F403
from .user import *  # noqa: F403
from .waitlist import *  # noqa: F403
