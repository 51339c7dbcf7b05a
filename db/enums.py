from enum import StrEnum


# Enums
class UserRole(StrEnum):
    CLIENT = "client"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class ClientTier(StrEnum):
    STANDARD = "standard"
    PREMIUM = "premium"
    PLATINUM = "platinum"


class ClientStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class TripStatus(StrEnum):
    PLANNING = "planning"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TripPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MediaSource(StrEnum):
    SUPABASE_STORAGE = "supabase-storage"
    TRIP_DOCUMENT = "trip-document"


# Source enum values that are spelled differently in the destination schema
SOURCE_ENUM_ALIASES: dict[type[StrEnum], dict[str, str]] = {
    ClientTier: {"elite": ClientTier.PLATINUM},
    TripStatus: {"in_progress": TripStatus.IN_PROGRESS, "canceled": TripStatus.CANCELLED},
}
