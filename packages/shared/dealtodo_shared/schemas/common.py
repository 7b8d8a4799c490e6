from enum import Enum


class MembershipRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"

    @classmethod
    def from_admin_flag(cls, is_admin: bool) -> "MembershipRole":
        return cls.ADMIN if is_admin else cls.MEMBER
