"""Application-wide constants."""


class EventType:
    """rrweb event type values."""
    DOM_CONTENT_LOADED = 0
    LOAD = 1
    FULL_SNAPSHOT = 2
    INCREMENTAL_SNAPSHOT = 3
    META = 4
    CUSTOM = 5
    PLUGIN = 6


class IncrementalSource:
    """rrweb incremental snapshot source values."""
    MUTATION = 0
    MOUSE_MOVE = 1
    MOUSE_INTERACTION = 2
    SCROLL = 3
    VIEWPORT_RESIZE = 4
    INPUT = 5
    TOUCH_MOVE = 6
    MEDIA_INTERACTION = 7
    STYLE_SHEET_RULE = 8
    CANVAS_MUTATION = 9
    FONT = 10
    LOG = 11
    DRAG = 12
    STYLE_DECLARATION = 13
    SELECTION = 14
    ADOPTED_STYLE_SHEET = 15


class SnapshotOrigin:
    """Snapshot source generations as named by the recording provider."""
    RECENT_BUFFER = "realtime"
    LEGACY_BLOB = "blob"
    PAGINATED_BLOB = "blob_v2"

    ALL = (RECENT_BUFFER, LEGACY_BLOB, PAGINATED_BLOB)


class ReconstructionStage:
    """Pipeline stages, in order."""
    LISTING = "listing"
    FETCHING = "fetching"
    ASSEMBLING = "assembling"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


# Compression version tag used by PostHog for per-field gzip payloads
COMPRESSION_VERSION_2024_10 = "2024-10"

# Only source type the reconstructor knows how to read
SUPPORTED_SOURCE_TYPE = "posthog"

# Work directory naming
WORK_DIR_PREFIX = "rrvideo-"
