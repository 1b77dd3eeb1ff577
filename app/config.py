"""Environment-driven settings for the admin service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from strata import __version__


ROOT = Path(__file__).resolve().parents[1]


def load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _flag(env: Mapping[str, str], name: str, default: str = "0") -> bool:
    return env.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    use_db: bool = False
    namespace: str = "admin"
    csv_enabled: bool = False
    asset_version: str | None = None
    log_level: str = "INFO"
    manifest_dir: str | None = None
    enabled_formats: tuple = field(default_factory=tuple)

    def advisory_notice(self) -> str | None:
        """Warning shown on every page when built assets and package disagree."""
        if not self.asset_version or self.asset_version == __version__:
            return None
        return (
            f"Admin assets were built for version {self.asset_version} "
            f"but the running package is version {__version__}. Rebuild the assets."
        )


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    if env is None:
        load_env_file(ROOT / "app" / ".env")
        env = os.environ
    csv_enabled = _flag(env, "STRATA_CSV_ENABLED")
    formats = ["csv"] if csv_enabled else []
    extra = env.get("STRATA_ENABLED_FORMATS", "")
    formats.extend(part.strip().lower() for part in extra.split(",") if part.strip())
    namespace = env.get("STRATA_NAMESPACE", "admin").strip().strip("/") or "admin"
    return Settings(
        use_db=_flag(env, "USE_DB"),
        namespace=namespace,
        csv_enabled=csv_enabled,
        asset_version=(env.get("STRATA_ASSET_VERSION") or "").strip() or None,
        log_level=(env.get("STRATA_LOG_LEVEL") or "INFO").strip().upper(),
        manifest_dir=(env.get("STRATA_MANIFEST_DIR") or "").strip() or None,
        enabled_formats=tuple(dict.fromkeys(formats)),
    )
