from __future__ import annotations

from pathlib import Path
from typing import Iterable, Protocol

from whoosh import index
from whoosh.fields import BOOLEAN, ID, NUMERIC, TEXT, Schema
from whoosh.qparser import QueryParser
from whoosh.query import Term

from .models import ComponentRecord


class Indexer(Protocol):
    def index_project(self, project_id: str, components: Iterable[ComponentRecord]) -> None:
        ...


class NoopIndexer:
    """
    Default indexer stub. Keeps the pipeline wired without pulling in Whoosh.
    """

    def index_project(self, project_id: str, components: Iterable[ComponentRecord]) -> None:
        return None

    def delete_project(self, project_id: str) -> None:
        return None


class WhooshIndexer:
    """
    File-system backed Whoosh index of components. Re-indexing a project
    first deletes its existing documents.
    """

    def __init__(self, index_dir: Path):
        self.index_dir = index_dir
        self.index_dir.mkdir(parents=True, exist_ok=True)
        self.schema = Schema(
            project_id=ID(stored=True),
            component_id=ID(stored=True, unique=True),
            screen_name=ID(stored=True),
            component_type=ID(stored=True),
            origin=ID(stored=True),
            faulty=BOOLEAN(stored=True),
            order_index=NUMERIC(stored=True, sortable=True),
            text=TEXT(stored=True),
        )
        if index.exists_in(self.index_dir):
            self.ix = index.open_dir(self.index_dir)
        else:
            self.ix = index.create_in(self.index_dir, self.schema)

    def index_project(self, project_id: str, components: Iterable[ComponentRecord]) -> None:
        writer = self.ix.writer()
        writer.delete_by_term("project_id", project_id)
        for component in components:
            writer.add_document(
                project_id=project_id,
                component_id=component.id,
                screen_name=component.screen_name,
                component_type=component.component_type,
                origin=component.origin.value,
                faulty=component.faulty,
                order_index=component.order_index,
                text=f"{component.name} {component.component_type}",
            )
        writer.commit()

    def delete_project(self, project_id: str) -> None:
        writer = self.ix.writer()
        writer.delete_by_term("project_id", project_id)
        writer.commit()

    def search(self, query_str: str, project_id: str | None = None, limit: int = 10):
        """
        Return a list of plain dicts so callers are safe after the searcher closes.
        """
        qp = QueryParser("text", schema=self.schema)
        q = qp.parse(query_str)
        with self.ix.searcher() as searcher:
            restrict = Term("project_id", project_id) if project_id else None
            results = searcher.search(q, limit=limit, filter=restrict)
            hits = []
            for hit in results:
                fields = hit.fields()
                hits.append(
                    {
                        "component_id": fields.get("component_id"),
                        "screen_name": fields.get("screen_name"),
                        "component_type": fields.get("component_type"),
                        "origin": fields.get("origin"),
                        "faulty": fields.get("faulty"),
                        "text": fields.get("text"),
                    }
                )
            return hits
