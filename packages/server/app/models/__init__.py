# SQLModel definitions, imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .user_org import UserOrg  # noqa: F401
from .oauth_token import OAuthToken  # noqa: F401
from .todo import Todo  # noqa: F401
