"""Append-only, hash-chained audit log for credential lifecycle events."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from hashlib import sha256
from pathlib import Path
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    """Represents a structured credential audit event.

    Events never carry token values; only account and app identifiers and a
    short diagnostic.
    """

    action: str
    status: str
    account_id: int
    timestamp: datetime
    app_id: Optional[int] = None
    detail: Optional[str] = None
    metadata: Dict[str, object] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "action": self.action,
            "status": self.status,
            "account_id": self.account_id,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.app_id is not None:
            payload["app_id"] = self.app_id
        if self.detail:
            payload["detail"] = self.detail
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload


@dataclass
class AuditLogger:
    """Writes append-only tamper-evident audit logs.

    Attributes:
        output_dir: Directory for audit log files
        filename: Name of the main audit log file
        max_bytes: Maximum log file size before rotation
        manifest_name: Name of the manifest file tracking the chain head
    """

    output_dir: Path
    filename: str = "credentials-audit.log"
    max_bytes: int = 1024 * 1024
    manifest_name: str = "audit_manifest.json"

    def __post_init__(self) -> None:
        self.output_dir = Path(self.output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._path = self.output_dir / self.filename
        self._manifest_path = self.output_dir / self.manifest_name
        if not self._manifest_path.exists():
            self._save_manifest({"last_hash": None, "rotated": []})

    @property
    def path(self) -> Path:
        return self._path

    def record(self, event: AuditEvent) -> None:
        payload = self._augment_with_chain(event.to_payload())
        with self._path.open("a", encoding="utf-8") as fp:
            fp.write(json.dumps(payload, separators=(",", ":")) + "\n")
        self._rotate_if_needed()

    def record_refresh_failure(
        self,
        *,
        account_id: int,
        app_id: int,
        detail: str,
        recoverable: Optional[bool] = None,
    ) -> None:
        metadata: Dict[str, object] = {}
        if recoverable is not None:
            metadata["recoverable"] = recoverable
        self.record(
            AuditEvent(
                action="token_refresh",
                status="failed",
                account_id=account_id,
                app_id=app_id,
                detail=detail,
                timestamp=datetime.now(timezone.utc),
                metadata=metadata,
            )
        )

    def iter_events(self, *, path: Optional[Path] = None) -> Iterable[Dict[str, object]]:
        target = path or self._path
        if not target.exists():
            return
        with target.open("r", encoding="utf-8") as fp:
            for line in fp:
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Failed to parse audit line as JSON")

    def verify(self, *, path: Optional[Path] = None) -> bool:
        """Verify the integrity of the audit log chain.

        Returns:
            True if the chain is intact, False if an entry was altered or removed
        """
        previous_hash: Optional[str] = None
        for entry in self.iter_events(path=path):
            if entry.get("chain_prev") != previous_hash:
                return False
            current_hash = entry.get("chain_hash")
            if current_hash != _compute_chain_hash(entry):
                return False
            previous_hash = current_hash  # type: ignore[assignment]
        return True

    def _augment_with_chain(self, payload: Dict[str, object]) -> Dict[str, object]:
        manifest = self._load_manifest()
        augmented = dict(payload)
        augmented["chain_prev"] = manifest.get("last_hash")
        augmented["chain_hash"] = _compute_chain_hash(augmented)
        manifest["last_hash"] = augmented["chain_hash"]
        self._save_manifest(manifest)
        return augmented

    def _rotate_if_needed(self) -> None:
        if not self._path.exists() or self._path.stat().st_size < self.max_bytes:
            return
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
        rotated_name = self.output_dir / f"credentials-audit-{timestamp}.log"
        os.replace(self._path, rotated_name)
        manifest = self._load_manifest()
        rotated = list(manifest.get("rotated", []))  # type: ignore[arg-type]
        rotated.append({"path": rotated_name.name, "hash": manifest.get("last_hash")})
        # A fresh file starts a fresh chain.
        manifest["rotated"] = rotated
        manifest["last_hash"] = None
        self._save_manifest(manifest)

    def _load_manifest(self) -> Dict[str, object]:
        return json.loads(self._manifest_path.read_text())

    def _save_manifest(self, manifest: Dict[str, object]) -> None:
        self._manifest_path.write_text(json.dumps(manifest, indent=2))


def _compute_chain_hash(payload: Dict[str, object]) -> str:
    canonical = json.dumps(
        {k: payload[k] for k in sorted(payload) if k != "chain_hash"},
        separators=(",", ":"),
    )
    return sha256(canonical.encode("utf-8")).hexdigest()


__all__ = ["AuditEvent", "AuditLogger"]
