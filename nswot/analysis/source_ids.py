"""
Real source identifiers recovered from connector-rendered markdown.

Each connector renders its items with a recognisable bullet or header; the
patterns below mirror those formats:

    jira        - [PROJ-123] Summary ...      /  - On [PROJ-123]: comment ...
    confluence  - [Page Title] (ID: 12345, Updated: ...)
    github      - [owner/repo#42] Title ...
    codebase    ### [owner/repo]
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from nswot.core.models import DATA_SOURCES, AnalysisSnapshot, SourceType

JIRA_KEY = re.compile(r"^\s*-\s+(?:On\s+)?\[([A-Z][A-Z0-9_]*-\d+)\]", re.MULTILINE)
CONFLUENCE_PAGE = re.compile(r"^\s*-\s+\[([^\]\n]+)\]\s*\(ID:\s*([^,)\s]+)", re.MULTILINE)
GITHUB_ITEM = re.compile(r"^\s*-\s+\[([\w.-]+/[\w.-]+)#(\d+)\]", re.MULTILINE)
CODEBASE_REPO = re.compile(r"^#{3}\s+\[([\w.-]+/[\w.-]+)\]", re.MULTILINE)


@dataclass(frozen=True)
class SourceRecord:
    """One real item in the corpus and every sourceId that refers to it."""

    source_type: str
    ids: Tuple[str, ...]

    @property
    def source_id(self) -> str:
        return self.ids[0]


def _records(source_type: str, aliases: List[Tuple[str, ...]]) -> List[SourceRecord]:
    seen: Set[str] = set()
    records = []
    for names in aliases:
        ids = tuple(f"{source_type}:{name}" for name in names)
        if ids[0] in seen:
            continue
        seen.add(ids[0])
        records.append(SourceRecord(source_type, ids))
    return records


def extract_source_records(source_type: str, markdown: Optional[str]) -> List[SourceRecord]:
    """Distinct items found in one source's markdown."""
    if not markdown:
        return []

    if source_type == SourceType.JIRA.value:
        aliases = [(key,) for key in JIRA_KEY.findall(markdown)]
    elif source_type == SourceType.CONFLUENCE.value:
        # A page is citable by title or by id; counts once
        aliases = [(page_id, title.strip()) for title, page_id in CONFLUENCE_PAGE.findall(markdown)]
    elif source_type == SourceType.GITHUB.value:
        aliases = [(f"{repo}#{number}",) for repo, number in GITHUB_ITEM.findall(markdown)]
    elif source_type == SourceType.CODEBASE.value:
        aliases = [(repo,) for repo in CODEBASE_REPO.findall(markdown)]
    else:
        raise ValueError(f"unknown data source: {source_type}")

    return _records(source_type, aliases)


def collect_source_records(snapshot: AnalysisSnapshot) -> Dict[str, List[SourceRecord]]:
    """Every citable item in the snapshot, grouped by source type."""
    records: Dict[str, List[SourceRecord]] = {}

    profiles = _records(SourceType.PROFILE.value, [(p.label,) for p in snapshot.profiles])
    if profiles:
        records[SourceType.PROFILE.value] = profiles

    for source in DATA_SOURCES:
        found = extract_source_records(source, snapshot.markdown_for(source))
        if found:
            records[source] = found

    return records


def valid_source_ids(snapshot: AnalysisSnapshot) -> Set[str]:
    return {
        source_id
        for records in collect_source_records(snapshot).values()
        for record in records
        for source_id in record.ids
    }
