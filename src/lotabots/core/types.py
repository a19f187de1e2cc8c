"""Type aliases used across the Lotabots pipeline."""

from __future__ import annotations

ModelId = str
RepoId = str
Bits = int
BackendParams = dict[str, str]
