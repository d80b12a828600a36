"""
Project statistics: the numbers behind a project summary, without any of
the presentation.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .models import ComponentOrigin, ProjectModel

logger = logging.getLogger(__name__)

MOST_USED_LIMIT = 8

BLOCK_KINDS: Dict[str, Tuple[str, ...]] = {
    "events": ("component_event",),
    "methods": ("component_method",),
    "properties": ("component_set_get",),
    "procedures": ("procedures_defnoreturn", "procedures_defreturn"),
    "variables": ("global_declaration",),
}


@dataclass
class ProjectSummary:
    screen_count: int
    extension_count: int
    block_count: int
    asset_count: int
    total_asset_size: int
    total_asset_size_label: str
    most_used_components: List[Tuple[str, int]] = field(default_factory=list)
    blocks_by_screen: Dict[str, int] = field(default_factory=dict)
    assets_by_type: Dict[str, int] = field(default_factory=dict)
    components_by_origin: Dict[str, int] = field(default_factory=dict)
    blocks_by_kind: Dict[str, int] = field(default_factory=dict)
    malformed_screens: List[str] = field(default_factory=list)


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in ("KB", "MB", "GB"):
        value /= 1024
        if value < 1024 or unit == "GB":
            return f"{value:.1f} {unit}"
    return f"{value:.1f} GB"


def _local_name(tag: str) -> str:
    # Blockly XML carries a default namespace: "{http://www.w3.org/1999/xhtml}block"
    return tag.rsplit("}", 1)[-1]


def parse_blocks(text: str) -> Optional[ET.Element]:
    """
    Parse a block program. Returns None for an empty program and raises
    ``ET.ParseError`` when it is not well-formed XML.
    """
    if not text or not text.strip():
        return None
    return ET.fromstring(text)


def count_blocks(root: Optional[ET.Element]) -> Counter:
    counts: Counter = Counter()
    if root is None:
        return counts
    for element in root.iter():
        if _local_name(element.tag) == "block":
            counts[element.get("type", "")] += 1
    return counts


def summarize(project: ProjectModel) -> ProjectSummary:
    component_types: Counter = Counter()
    origins: Counter = Counter({ComponentOrigin.BUILT_IN.value: 0, ComponentOrigin.EXTENSION.value: 0})
    blocks_by_screen: Dict[str, int] = {}
    block_types: Counter = Counter()
    malformed: List[str] = []

    for screen in project.screens:
        for node in screen.form.walk():
            component_types[node.type] += 1
            origins[node.origin.value] += 1
        try:
            counts = count_blocks(parse_blocks(screen.blocks))
        except ET.ParseError as exc:
            logger.warning("Block program of %s is not well-formed: %s", screen.name, exc)
            malformed.append(screen.name)
            counts = Counter()
        blocks_by_screen[screen.name] = sum(counts.values())
        block_types.update(counts)

    assets_by_type: Counter = Counter(asset.type for asset in project.assets)
    total_size = sum(asset.size for asset in project.assets)

    return ProjectSummary(
        screen_count=len(project.screens),
        extension_count=len(project.extensions),
        block_count=sum(blocks_by_screen.values()),
        asset_count=len(project.assets),
        total_asset_size=total_size,
        total_asset_size_label=format_size(total_size),
        most_used_components=component_types.most_common(MOST_USED_LIMIT),
        blocks_by_screen=blocks_by_screen,
        assets_by_type=dict(assets_by_type),
        components_by_origin=dict(origins),
        blocks_by_kind={kind: sum(block_types[t] for t in types) for kind, types in BLOCK_KINDS.items()},
        malformed_screens=malformed,
    )
