"""Data models for the sweep blueprint."""

from __future__ import annotations

from typing import TypedDict


class OrphanEntry(TypedDict, total=False):
    """A document the sweep found orphaned."""

    id: str
    name: str
    reason: str
    status: str


class SweepReport(TypedDict):
    """Outcome of one sweep run."""

    orphanedTeams: list[OrphanEntry]
    orphanedScrims: list[OrphanEntry]
    orphanedTournaments: list[OrphanEntry]
    orphanedMatches: list[OrphanEntry]
    trimmedScrimRequests: int
    trimmedReferees: int
    cleanedNotifications: int
    cleanedChats: int
    cleanedOldScrims: int
    cleanedOldTournaments: int
    errors: list[str]
    dryRun: bool


LIST_FIELDS = ("orphanedTeams", "orphanedScrims", "orphanedTournaments", "orphanedMatches")
COUNT_FIELDS = (
    "trimmedScrimRequests",
    "trimmedReferees",
    "cleanedNotifications",
    "cleanedChats",
    "cleanedOldScrims",
    "cleanedOldTournaments",
)


def new_report(dry_run: bool = False) -> SweepReport:
    """Return an empty report."""
    return {
        "orphanedTeams": [],
        "orphanedScrims": [],
        "orphanedTournaments": [],
        "orphanedMatches": [],
        "trimmedScrimRequests": 0,
        "trimmedReferees": 0,
        "cleanedNotifications": 0,
        "cleanedChats": 0,
        "cleanedOldScrims": 0,
        "cleanedOldTournaments": 0,
        "errors": [],
        "dryRun": dry_run,
    }


def total_changes(report: SweepReport) -> int:
    """Count every change a report records."""
    listed = sum(len(report[field]) for field in LIST_FIELDS)  # type: ignore[literal-required]
    counted = sum(report[field] for field in COUNT_FIELDS)  # type: ignore[literal-required]
    return listed + counted
