# volunteer_board/db/models/enums.py
import enum


class TaskStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Zone(str, enum.Enum):
    WOODSHOP = "Woodshop"
    PRINTING_3D = "3D Printing"
    ELECTRONICS = "Electronics"
    LASER_CUTTING = "Laser Cutting"
    CNC = "CNC"
    GENERAL = "General"
    ADMIN = "Admin"


class NotificationKind(str, enum.Enum):
    """Announcement kinds emitted after authoritative writes"""
    CREATED = "created"
    CLAIMED = "claimed"
    COMPLETED = "completed"
    # Thank-you sent privately to one contributor
    COMPLETED_DM = "completed_dm"


class ChangeAction(str, enum.Enum):
    """Change feed actions"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
