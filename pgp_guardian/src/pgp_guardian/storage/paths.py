# Manage keystore paths and create directories as needed.
from __future__ import annotations
from pathlib import Path
from ..config import CONFIG
from ..utils import b64e

class PathResolver:
  """Compute and ensure paths for the local keystore"""
  def __init__(self, root: Path | None = None):
    self.root = (root or CONFIG.store_dir)
    self.keys = self.root / "keys"

  def ensure(self) -> None:
    self.keys.mkdir(parents=True, exist_ok=True)

  def bundle(self, name: str) -> Path:
    # Names are caller-chosen; encode them into a filesystem-safe stem.
    return self.keys / f"{b64e(name.encode('utf-8'))}.json"
