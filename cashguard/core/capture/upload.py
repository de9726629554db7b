"""HTTP boundary to the clip storage server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import requests

from cashguard.core.errors import EmptyArtifactError, UploadError
from cashguard.core.types import Incident

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_URL = "http://localhost:3002/api/clips"


def iso_utc(ts: float) -> str:
    """Epoch seconds -> ISO-8601 UTC with millisecond precision and a Z suffix."""

    dt = datetime.fromtimestamp(float(ts), tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class UploadReceipt:
    clip_id: str
    status_code: int
    body: dict[str, Any]


class ClipUploader:
    """Posts one incident clip as multipart form data."""

    def __init__(
        self,
        url: str = DEFAULT_UPLOAD_URL,
        token: str | None = None,
        timeout: float = 15.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.token = token
        self.timeout = float(timeout)
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def build_form(self, incident: Incident) -> dict[str, str]:
        end = incident.clip_end_time if incident.clip_end_time is not None else incident.detected_at
        return {
            "cashierName": incident.cashier_label,
            "fromTime": iso_utc(incident.clip_start_time),
            "toTime": iso_utc(end),
        }

    def upload(self, incident: Incident) -> UploadReceipt:
        if not incident.data:
            raise EmptyArtifactError(f"incident {incident.id} has an empty clip")

        ext = "mjpeg" if "jpeg" in incident.media_type else "bin"
        files = {"clip": (f"{incident.id}.{ext}", incident.data, incident.media_type)}
        logger.info("Uploading clip %s (%d bytes)", incident.id, incident.size)
        try:
            resp = self.session.post(
                self.url,
                data=self.build_form(incident),
                files=files,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UploadError(f"network error: {exc}") from exc

        if resp.status_code >= 400:
            raise UploadError(
                f"server returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            body = resp.json()
        except ValueError as exc:
            raise UploadError("server response is not JSON", status_code=resp.status_code) from exc
        if not isinstance(body, dict) or body.get("id") in (None, ""):
            raise UploadError("server response has no clip id", status_code=resp.status_code)
        return UploadReceipt(clip_id=str(body["id"]), status_code=resp.status_code, body=body)

    def close(self) -> None:
        self.session.close()
