"""Tenant file storage collaborator.

Uploaded documents live outside the record store, one directory per
tenant.  The engine only needs to remove a tenant's files during the
retention purge; reading and writing uploads is the request layer's job.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Protocol

from pilot_engine.state.store import validate_tenant_id

logger = logging.getLogger(__name__)


class TenantFileStorage(Protocol):
    """Protocol for per-tenant file storage."""

    def remove_tenant(self, tenant_id: str) -> bool:
        """Delete every stored file for *tenant_id*.  Return whether anything existed."""
        ...


class LocalFileStorage:
    """Stores tenant files under ``<root>/<tenant_id>/``.

    Parameters
    ----------
    root:
        Base directory.  Created on first use.
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)

    def tenant_dir(self, tenant_id: str) -> Path:
        # Validation keeps tenant ids from escaping the root ("..", "/").
        return self._root / validate_tenant_id(tenant_id)

    def remove_tenant(self, tenant_id: str) -> bool:
        path = self.tenant_dir(tenant_id)
        if not path.exists():
            return False
        shutil.rmtree(path)
        logger.info("Removed tenant file storage: %s", path)
        return True
