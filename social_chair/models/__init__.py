# SQLModel definitions: imported here to ensure metadata is populated.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .chapter import Chapter  # noqa: F401
from .role import Role  # noqa: F401
from .user_chapter_link import UserChapterLink  # noqa: F401
