"""YAML configuration loader.

Loads the seed config files from the config/ directory:
  banks.yaml   — bank id → store (table) mapping
  upload.yaml  — upload defaults (auto-skip, watcher timing)
"""

from pathlib import Path

import yaml


class Config:
    """Loads and provides access to all YAML configuration files."""

    def __init__(self, config_dir: Path | str = "config"):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._banks: list[dict] | None = None
        self._upload: dict | None = None

    def _load(self, filename: str) -> dict | list:
        path = self.config_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            raise ValueError(f"Empty config file: {path}")
        return data

    @property
    def banks(self) -> list[dict]:
        if self._banks is None:
            data = self._load("banks.yaml")
            self._banks = data.get("banks", []) if isinstance(data, dict) else data
        return self._banks

    @property
    def upload(self) -> dict:
        if self._upload is None:
            data = self._load("upload.yaml")
            if not isinstance(data, dict):
                raise ValueError(f"upload.yaml must be a mapping, got {type(data).__name__}")
            self._upload = data
        return self._upload

    @property
    def auto_skip_exact(self) -> bool:
        """Whether exact duplicates are dropped without review. Default: False."""
        return bool(self.upload.get("auto_skip_exact", False))

    @property
    def stability_seconds(self) -> int:
        return int(self.upload.get("stability_seconds", 10))

    @property
    def poll_interval(self) -> int:
        return int(self.upload.get("poll_interval", 30))

    def bank_by_id(self, bank_id: str) -> dict | None:
        for bank in self.banks:
            if bank.get("id") == bank_id:
                return bank
        return None

    def store_for_bank(self, bank_id: str) -> str | None:
        """Return the store name configured for a bank, or None."""
        bank = self.bank_by_id(bank_id)
        if bank is None:
            return None
        return bank.get("store")

    @property
    def store_names(self) -> dict[str, str]:
        """Map store name → bank display name for every configured bank."""
        names: dict[str, str] = {}
        for bank in self.banks:
            store = bank.get("store", "")
            if store:
                names[store] = bank.get("name", bank.get("id", store))
        return names
