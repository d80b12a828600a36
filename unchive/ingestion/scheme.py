from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set, Union

from ..config import SCHEME_FOOTER_LENGTH, SCHEME_HEADER_LENGTH
from .catalog import DescriptorCatalog
from .errors import FormatError, ValidationError
from .extensions import ExtensionRegistry
from .models import ComponentNode, ComponentOrigin, Diagnostic, DiagnosticLevel, ScreenModel
from .properties import PropertyResolverPool, ResolutionTask

logger = logging.getLogger(__name__)

CHILDREN_KEY = "$Components"


def parse_scheme(
    text: str,
    header_length: int = SCHEME_HEADER_LENGTH,
    footer_length: int = SCHEME_FOOTER_LENGTH,
) -> Dict[str, Any]:
    """
    Strip the fixed framing around a .scm payload and parse the JSON inside.
    """
    if len(text) < header_length + footer_length:
        raise FormatError("Scheme payload is shorter than its framing")
    body = text[header_length : len(text) - footer_length]
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise FormatError(f"Scheme payload is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise FormatError("Scheme payload must be a JSON object")
    return data


@dataclass
class _Skeleton:
    name: str
    type: str
    uid: Union[str, int]
    origin: ComponentOrigin
    task: ResolutionTask
    children: List["_Skeleton"] = field(default_factory=list)


class ComponentTreeBuilder:
    """
    Builds typed component trees out of scheme payloads.

    The tree is built in two passes. The first walks the JSON synchronously,
    decides each component's origin and descriptor and snapshots its raw
    properties. The second resolves all properties at once on the resolver
    pool, after which the immutable nodes are assembled bottom-up. A
    component whose properties fail to resolve is flagged faulty; the rest
    of the tree is unaffected.
    """

    def __init__(
        self,
        catalog: DescriptorCatalog,
        extensions: ExtensionRegistry,
        pool: PropertyResolverPool,
        header_length: int = SCHEME_HEADER_LENGTH,
        footer_length: int = SCHEME_FOOTER_LENGTH,
    ):
        self.catalog = catalog
        self.extensions = extensions
        self.pool = pool
        self.header_length = header_length
        self.footer_length = footer_length
        self.diagnostics: List[Diagnostic] = []

    async def build_screen(self, scheme_text: str, block_text: str, screen_name: str) -> ScreenModel:
        if not screen_name:
            raise ValidationError("Screen name cannot be empty")
        data = parse_scheme(scheme_text, self.header_length, self.footer_length)
        root = data.get("Properties")
        if not isinstance(root, dict):
            raise ValidationError(f"Screen {screen_name} has no Properties root component")
        form = await self.build_component(root, screen_name=screen_name)
        logger.debug("Built screen %s", screen_name)
        return ScreenModel(name=screen_name, form=form, blocks=block_text)

    async def build_component(self, node: Dict[str, Any], screen_name: str = "") -> ComponentNode:
        await self.catalog.get()
        flat: List[_Skeleton] = []
        skeleton = self._build_skeleton(node, flat, set(), screen_name)
        results = await self.pool.resolve_many([item.task for item in flat])
        resolved = {id(item): result for item, result in zip(flat, results)}
        return self._assemble(skeleton, resolved, screen_name)

    def _build_skeleton(
        self,
        node: Dict[str, Any],
        flat: List[_Skeleton],
        seen_uids: Set[str],
        screen_name: str,
    ) -> _Skeleton:
        name = str(node.get("$Name", ""))
        component_type = str(node.get("$Type", ""))
        uid = node.get("Uuid") or 0
        if "Uuid" in node and node["Uuid"] not in (None, ""):
            key = str(node["Uuid"])
            if key in seen_uids:
                raise ValidationError(f"Duplicate component uid {key} in screen {screen_name}")
            seen_uids.add(key)

        origin, descriptor = self._resolve_descriptor(component_type)
        descriptor_properties = descriptor.get("properties", []) if isinstance(descriptor, dict) else None

        raw = {key: value for key, value in node.items() if key != CHILDREN_KEY}
        skeleton = _Skeleton(
            name=name,
            type=component_type,
            uid=uid,
            origin=origin,
            task=ResolutionTask(component_name=name, raw_properties=raw, descriptor_properties=descriptor_properties),
        )
        flat.append(skeleton)

        children = node.get(CHILDREN_KEY) or []
        if not isinstance(children, list):
            self._diagnose(DiagnosticLevel.WARNING, name, f"{CHILDREN_KEY} is not a list, children ignored")
            children = []
        for child in children:
            if not isinstance(child, dict):
                self._diagnose(DiagnosticLevel.WARNING, name, "child component is not an object, skipped")
                continue
            skeleton.children.append(self._build_skeleton(child, flat, seen_uids, screen_name))
        return skeleton

    def _resolve_descriptor(self, component_type: str):
        extension = self.extensions.match(component_type)
        if extension is not None:
            return ComponentOrigin.EXTENSION, extension.descriptor
        return ComponentOrigin.BUILT_IN, self.catalog.find(self.catalog.qualified_name(component_type))

    def _assemble(self, skeleton: _Skeleton, resolved: Dict[int, Any], screen_name: str) -> ComponentNode:
        children = [self._assemble(child, resolved, screen_name) for child in skeleton.children]
        result = resolved.get(id(skeleton))
        faulty = isinstance(result, BaseException)
        if faulty:
            logger.warning(
                "Error in %s (%s / %s) on %s: %s", skeleton.name, skeleton.uid, skeleton.type, screen_name, result
            )
            self._diagnose(DiagnosticLevel.WARNING, skeleton.name, f"properties not resolved: {result}")
        return ComponentNode(
            name=skeleton.name,
            type=skeleton.type,
            uid=skeleton.uid,
            origin=skeleton.origin,
            properties=[] if faulty else list(result or []),
            children=children,
            faulty=faulty,
        )

    def _diagnose(self, level: DiagnosticLevel, source: str, message: str) -> None:
        self.diagnostics.append(Diagnostic(level=level, source=source, message=message))
