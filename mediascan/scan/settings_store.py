"""JSON file persistence for scan settings."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import aiofiles.os
import structlog
from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from ..common.config import ScanSettings

logger = structlog.get_logger(__name__)


class ScanSettingsStore:
    """
    Loads and saves ScanSettings as a camelCase JSON document.

    The current value is cached in memory so hot paths (the resource
    monitor, the processors) can read it synchronously via :attr:`current`.
    """

    def __init__(self, path: Path, defaults: Optional[ScanSettings] = None):
        self.path = path
        self._defaults = defaults or ScanSettings()
        self._current = self._defaults.model_copy(deep=True)

    @property
    def current(self) -> ScanSettings:
        return self._current

    async def load(self) -> ScanSettings:
        """Read settings from disk; missing or invalid files yield defaults."""
        if not await aiofiles.os.path.exists(self.path):
            logger.debug("scan_settings_file_missing", path=str(self.path))
            self._current = self._defaults.model_copy(deep=True)
            return self._current

        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
            self._current = ScanSettings.model_validate(json.loads(raw))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("scan_settings_invalid", path=str(self.path), error=str(e))
            self._current = self._defaults.model_copy(deep=True)
        return self._current

    async def save(self, settings: ScanSettings) -> ScanSettings:
        """Write settings atomically (temp file then rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(settings.model_dump(mode="json", by_alias=True), indent=2)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")

        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(payload)
        await aiofiles.os.replace(tmp_path, self.path)

        self._current = settings
        logger.info("scan_settings_saved", path=str(self.path))
        return settings

    async def update(self, changes: Dict[str, Any]) -> ScanSettings:
        """
        Merge a partial update (camelCase or snake_case keys) and save.

        Raises:
            pydantic.ValidationError: If the merged settings are invalid
        """
        normalized = {to_camel(k) if "_" in k else k: v for k, v in changes.items()}
        merged = {**self._current.model_dump(by_alias=True), **normalized}
        settings = ScanSettings.model_validate(merged)
        return await self.save(settings)

    async def reset(self) -> ScanSettings:
        return await self.save(self._defaults.model_copy(deep=True))
