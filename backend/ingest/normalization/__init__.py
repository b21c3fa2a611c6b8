from ingest.normalization.normalizer import (
    RosterNameResolver,
    ScorerNameResolver,
    build_goal_events,
    determine_game_status,
    format_for_display,
    merge_snapshot,
    needs_enrichment,
    snapshot_from_detail,
    snapshot_from_index,
)

__all__ = [
    "RosterNameResolver",
    "ScorerNameResolver",
    "build_goal_events",
    "determine_game_status",
    "format_for_display",
    "merge_snapshot",
    "needs_enrichment",
    "snapshot_from_detail",
    "snapshot_from_index",
]
