import enum

class DeviceStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"
    lost = "lost"
