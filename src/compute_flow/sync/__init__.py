"""
Realtime sync - Merging remote changes into a local session.

- events: Parsing raw feed payloads into ChangeEvents
- merge: Field-level last-writer-wins merge of node changes
- media: The project media library
- feed: ChangeFeed interface and the Supabase realtime feed
- coordinator: RealtimeSyncCoordinator, the scoped subscription
"""

from compute_flow.sync.coordinator import RealtimeSyncCoordinator
from compute_flow.sync.events import ChangeEvent, ChangeType, EntityType, parse_event
from compute_flow.sync.feed import ChangeFeed, SupabaseRealtimeFeed
from compute_flow.sync.media import MediaItem, MediaLibrary
from compute_flow.sync.merge import LocalEditLog, MergeOutcome, merge_node_event


__all__ = [
    "RealtimeSyncCoordinator",
    "ChangeEvent",
    "ChangeType",
    "EntityType",
    "parse_event",
    "ChangeFeed",
    "SupabaseRealtimeFeed",
    "MediaItem",
    "MediaLibrary",
    "LocalEditLog",
    "MergeOutcome",
    "merge_node_event",
]
