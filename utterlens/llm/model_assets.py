"""Resolve GGUF model files into a stable local models directory.

A model is copied once, from either the application bundle or a downloadable
asset, into ``<documents_dir>/models/<id>.gguf``. Later calls return the
existing file without touching the source unless ``force_refresh`` is set.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import uuid
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx
from pydantic import BaseModel, model_validator

from utterlens.errors import AssetResolutionError, ModelNotFoundError
from utterlens.utils.config import AppConfig
from utterlens.utils.logging import debug, info

MODELS_DIR_NAME = "models"
ASSETS_DIR_NAME = "assets"


class ModelAssetConfig(BaseModel):
    id: str
    bundle_relative_path: str | None = None
    asset_uri: str | None = None
    filename: str | None = None

    @model_validator(mode="after")
    def _one_source(self) -> ModelAssetConfig:
        if bool(self.bundle_relative_path) == bool(self.asset_uri):
            raise ValueError("exactly one of bundle_relative_path or asset_uri is required")
        return self

    @property
    def target_filename(self) -> str:
        return self.filename or f"{self.id}.gguf"


def candidate_bundle_paths(bundle_dir: Path, relative_path: str, platform: str) -> list[Path]:
    """Bundle locations to probe, in order."""
    relative = relative_path.lstrip("/")
    candidates = [bundle_dir / relative]
    if platform == "ios":
        candidates.append(bundle_dir / "Supporting" / relative)
        basename = relative.split("/")[-1]
        if basename:
            candidates.append(bundle_dir / basename)
    return candidates


class ModelAssetResolver:
    def __init__(self, documents_dir: str | Path = "data", bundle_dir: str | Path = "bundle",
                 platform: str = "desktop",
                 transport: httpx.AsyncBaseTransport | None = None):
        self.documents_dir = Path(documents_dir)
        self.bundle_dir = Path(bundle_dir)
        self.platform = platform
        self._transport = transport

    @classmethod
    def from_config(cls, cfg: AppConfig) -> ModelAssetResolver:
        return cls(
            documents_dir=cfg.storage.documents_dir,
            bundle_dir=cfg.storage.bundle_dir,
            platform=cfg.runtime.platform,
        )

    @property
    def models_dir(self) -> Path:
        return self.documents_dir / MODELS_DIR_NAME

    @property
    def assets_dir(self) -> Path:
        return self.documents_dir / ASSETS_DIR_NAME

    def model_path(self, model_id: str, filename: str | None = None) -> Path:
        return self.models_dir / (filename or f"{model_id}.gguf")

    async def ensure(self, config: ModelAssetConfig, force_refresh: bool = False) -> Path:
        destination = self.model_path(config.id, config.filename)
        self.models_dir.mkdir(parents=True, exist_ok=True)

        if not force_refresh and destination.exists():
            return destination

        if config.asset_uri:
            source = await self._materialize_asset(config)
        else:
            source = self._find_in_bundle(config.bundle_relative_path or "")

        debug(f"[model-assets] copying {source} -> {destination}")
        await asyncio.to_thread(_copy_file, source, destination)
        info(f"Model '{config.id}' ready at {destination}")
        return destination

    def remove(self, model_id: str, filename: str | None = None) -> None:
        destination = self.model_path(model_id, filename)
        if destination.exists():
            destination.unlink(missing_ok=True)
            info(f"Removed model file {destination}")

    def _find_in_bundle(self, relative_path: str) -> Path:
        debug(f"[model-assets] bundle check platform={self.platform} "
              f"bundle_dir={self.bundle_dir} relative_path={relative_path}")
        candidates = candidate_bundle_paths(self.bundle_dir, relative_path, self.platform)
        for candidate in candidates:
            if candidate.is_file():
                debug(f"[model-assets] using source {candidate}")
                return candidate
            debug(f"[model-assets] candidate missing {candidate}")
        raise ModelNotFoundError(relative_path, [str(c) for c in candidates])

    async def _materialize_asset(self, config: ModelAssetConfig) -> Path:
        uri = config.asset_uri or ""
        parsed = urlparse(uri)
        if parsed.scheme in ("http", "https"):
            local = await self._download(uri, self.assets_dir / (Path(parsed.path).name or config.target_filename))
        elif parsed.scheme == "file":
            local = Path(unquote(parsed.path))
        else:
            local = Path(uri)

        if not local.is_file():
            raise AssetResolutionError(f"Missing local URI for asset {config.id}")
        return local

    async def _download(self, url: str, dest: Path) -> Path:
        if dest.exists():
            return dest
        dest.parent.mkdir(parents=True, exist_ok=True)
        partial = dest.with_name(f"{dest.name}.{uuid.uuid4().hex[:8]}.part")
        info(f"Downloading model asset {url}")
        try:
            async with httpx.AsyncClient(transport=self._transport, follow_redirects=True,
                                         timeout=None) as client:
                async with client.stream("GET", url) as r:
                    r.raise_for_status()
                    with open(partial, "wb") as f:
                        async for chunk in r.aiter_bytes():
                            f.write(chunk)
        except httpx.HTTPError as e:
            partial.unlink(missing_ok=True)
            raise AssetResolutionError(f"Download of {url} failed: {e}") from e
        os.replace(partial, dest)
        return dest


def _copy_file(source: Path, destination: Path) -> None:
    partial = destination.with_name(f"{destination.name}.{uuid.uuid4().hex[:8]}.part")
    try:
        shutil.copyfile(source, partial)
        os.replace(partial, destination)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise


# ── Module-level helpers bound to the app config ─────────────────────────────

async def ensure_model_asset(config: ModelAssetConfig, force_refresh: bool = False,
                             resolver: ModelAssetResolver | None = None,
                             cfg: AppConfig | None = None) -> Path:
    resolver = resolver or ModelAssetResolver.from_config(cfg or AppConfig())
    return await resolver.ensure(config, force_refresh=force_refresh)


def remove_model_asset(model_id: str, filename: str | None = None,
                       resolver: ModelAssetResolver | None = None,
                       cfg: AppConfig | None = None) -> None:
    resolver = resolver or ModelAssetResolver.from_config(cfg or AppConfig())
    resolver.remove(model_id, filename)


def get_model_path(model_id: str, filename: str | None = None,
                   resolver: ModelAssetResolver | None = None,
                   cfg: AppConfig | None = None) -> Path:
    resolver = resolver or ModelAssetResolver.from_config(cfg or AppConfig())
    return resolver.model_path(model_id, filename)
