"""Badge type tags stored in ``badges.type``."""

from enum import Enum


class BadgeType(str, Enum):
    EXPLORER = "EXPLORER"
    CONNECTOR = "CONNECTOR"
    HOST_MASTER = "HOST_MASTER"
    TRUSTED_MEMBER = "TRUSTED_MEMBER"
    COMMUNITY_BUILDER = "COMMUNITY_BUILDER"
    SERVICE_STAR = "SERVICE_STAR"
    EARLY_ADOPTER = "EARLY_ADOPTER"
    GLOBAL_CITIZEN = "GLOBAL_CITIZEN"
