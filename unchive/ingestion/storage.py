from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .models import AssetRecord

logger = logging.getLogger(__name__)


@dataclass
class StoragePaths:
    root: Path

    def project_dir(self, project_id: str) -> Path:
        return self.root / "projects" / str(project_id)

    def original_archive_path(self, project_id: str) -> Path:
        return self.project_dir(project_id) / "original.aia"

    def model_output_path(self, project_id: str) -> Path:
        return self.project_dir(project_id) / "project_model.json"

    def asset_path(self, project_id: str, asset_name: str) -> Path:
        # Asset names are single path segments; anything else is flattened.
        return self.project_dir(project_id) / "assets" / Path(asset_name).name


class LocalProjectStorage:
    """
    Manages filesystem layout for uploaded archives, serialized models, and
    exported assets.
    """

    def __init__(self, storage_paths: StoragePaths):
        self.paths = storage_paths

    def ensure_base_dirs(self, project_id: str) -> None:
        base = self.paths.project_dir(project_id)
        (base / "assets").mkdir(parents=True, exist_ok=True)

    def save_original_archive(self, project_id: str, data: bytes) -> Path:
        self.ensure_base_dirs(project_id)
        target = self.paths.original_archive_path(project_id)
        target.write_bytes(data)
        return target

    def find_original_archive(self, project_id: str) -> Optional[Path]:
        path = self.paths.original_archive_path(project_id)
        return path if path.exists() else None

    def write_model_output(self, project_id: str, model_json: Dict[str, Any]) -> Path:
        self.ensure_base_dirs(project_id)
        target = self.paths.model_output_path(project_id)
        with target.open("w", encoding="utf-8") as f:
            json.dump(model_json, f, ensure_ascii=False, indent=2)
        return target

    def read_model_output(self, project_id: str) -> Optional[Dict[str, Any]]:
        path = self.paths.model_output_path(project_id)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def write_assets(self, project_id: str, assets: Iterable[AssetRecord]) -> List[Path]:
        self.ensure_base_dirs(project_id)
        written: List[Path] = []
        for asset in assets:
            target = self.paths.asset_path(project_id, asset.name)
            target.write_bytes(asset.payload)
            written.append(target)
        return written

    def asset_exists(self, project_id: str, asset_name: str) -> bool:
        return self.paths.asset_path(project_id, asset_name).exists()

    def delete_project(self, project_id: str) -> None:
        base = self.paths.project_dir(project_id)
        if base.exists():
            shutil.rmtree(base)
            logger.info("Removed storage for project %s", project_id)
