"""Domain enumerations."""

from enum import StrEnum


class QueryStatus(StrEnum):
    """Status of a query. Completed and failed are terminal."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class QueryStage(StrEnum):
    """Pipeline stage a query is in."""

    INIT = "init"
    ANALYZING = "analyzing"
    MERGING = "merging"
    DONE = "done"


class AssetStatus(StrEnum):
    """Status of a single asset analysis. Completed and failed are terminal."""

    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


class MediaType(StrEnum):
    """Media kind of an asset."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class Intent(StrEnum):
    """What the user wants to produce."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    MIXED = "mixed"


class MessageType(StrEnum):
    """Narration message kinds shown in the live progress feed."""

    STATUS = "status"
    ASSET_START = "asset_start"
    ASSET_PROGRESS = "asset_progress"
    ASSET_COMPLETE = "asset_complete"
    MERGE = "merge"
    FINAL = "final"
    CONFLICT = "conflict"
    SUGGESTION = "suggestion"
    ERROR = "error"


class Severity(StrEnum):
    """Single ordinal impact scale used for gaps and conflicts."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)


class AssetRole(StrEnum):
    """Role an analyzed asset can play in the project."""

    PRIMARY_CONTENT = "primary_content"
    SUPPORTING_ELEMENT = "supporting_element"
    REFERENCE_MATERIAL = "reference_material"
    UNCLEAR = "unclear"


class UtilizationBucket(StrEnum):
    """Exactly one bucket is assigned to every asset during synthesis."""

    PRIMARY = "primary"
    SUPPORTING = "supporting"
    REFERENCE = "reference"
    UNUSED = "unused"


class ChangeTable(StrEnum):
    """Progress store tables that emit change events."""

    QUERIES = "dreamcut_queries"
    ASSETS = "dreamcut_assets"
    MESSAGES = "dreamcut_messages"


class ChangeType(StrEnum):
    """Row change kinds."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
