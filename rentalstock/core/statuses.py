"""Closed vocabularies shared by models, schemas and services."""

# Equipment category
CATEGORY_CHOICES = ("Tents", "Sleeping Bags", "Cooking", "Lighting", "Hiking", "Other")

# Equipment status
STATUS_AVAILABLE = "available"
STATUS_IN_USE = "in-use"
STATUS_MAINTENANCE = "maintenance"
STATUS_DAMAGED = "damaged"
STATUS_RETIRED = "retired"
STATUS_LOST = "lost"

EQUIPMENT_STATUS_CHOICES = (
    STATUS_AVAILABLE,
    STATUS_IN_USE,
    STATUS_MAINTENANCE,
    STATUS_DAMAGED,
    STATUS_RETIRED,
    STATUS_LOST,
)

# Equipment condition, best first
CONDITION_NEW = "new"
CONDITION_EXCELLENT = "excellent"
CONDITION_GOOD = "good"
CONDITION_FAIR = "fair"
CONDITION_POOR = "poor"

CONDITION_CHOICES = (
    CONDITION_NEW,
    CONDITION_EXCELLENT,
    CONDITION_GOOD,
    CONDITION_FAIR,
    CONDITION_POOR,
)

# Ledger action kinds
ACTION_STOCK_IN = "stock-in"
ACTION_STOCK_OUT = "stock-out"
ACTION_UPDATE = "update"
ACTION_MAINTENANCE = "maintenance"
ACTION_TRANSFER = "transfer"

ACTION_CHOICES = (
    ACTION_STOCK_IN,
    ACTION_STOCK_OUT,
    ACTION_UPDATE,
    ACTION_MAINTENANCE,
    ACTION_TRANSFER,
)

# Stock order status
ORDER_PENDING = "pending"
ORDER_CONFIRMED = "confirmed"
ORDER_SHIPPED = "shipped"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"

ORDER_STATUS_CHOICES = (
    ORDER_PENDING,
    ORDER_CONFIRMED,
    ORDER_SHIPPED,
    ORDER_DELIVERED,
    ORDER_CANCELLED,
)
ORDER_OPEN_STATUSES = (ORDER_PENDING, ORDER_CONFIRMED, ORDER_SHIPPED)

# Maintenance record
MAINTENANCE_SCHEDULED = "scheduled"
MAINTENANCE_IN_PROGRESS = "in-progress"
MAINTENANCE_COMPLETED = "completed"
MAINTENANCE_CANCELLED = "cancelled"

MAINTENANCE_STATUS_CHOICES = (
    MAINTENANCE_SCHEDULED,
    MAINTENANCE_IN_PROGRESS,
    MAINTENANCE_COMPLETED,
    MAINTENANCE_CANCELLED,
)
MAINTENANCE_TYPE_CHOICES = ("preventive", "corrective", "calibration", "inspection", "cleaning", "other")
PRIORITY_CHOICES = ("low", "medium", "high", "critical")

# Damage report
SEVERITY_MINOR = "minor"
SEVERITY_MODERATE = "moderate"
SEVERITY_MAJOR = "major"
SEVERITY_CRITICAL = "critical"

SEVERITY_CHOICES = (SEVERITY_MINOR, SEVERITY_MODERATE, SEVERITY_MAJOR, SEVERITY_CRITICAL)
DAMAGE_TYPE_CHOICES = ("physical", "water", "wear-and-tear", "electrical", "missing-parts", "other")

DAMAGE_REPORTED = "reported"
DAMAGE_INSPECTED = "inspected"
DAMAGE_REPAIRABLE = "repairable"
DAMAGE_UNREPAIRABLE = "unrepairable"
DAMAGE_REPAIRED = "repaired"
DAMAGE_REPLACED = "replaced"
DAMAGE_WRITTEN_OFF = "written-off"

DAMAGE_STATUS_CHOICES = (
    DAMAGE_REPORTED,
    DAMAGE_INSPECTED,
    DAMAGE_REPAIRABLE,
    DAMAGE_UNREPAIRABLE,
    DAMAGE_REPAIRED,
    DAMAGE_REPLACED,
    DAMAGE_WRITTEN_OFF,
)


def normalize_choice(value: object, choices: tuple[str, ...]) -> str | None:
    """Match ``value`` against ``choices`` ignoring case and surrounding space."""

    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    for choice in choices:
        if choice.casefold() == cleaned.casefold():
            return choice
    return None
