"""HTTP client for the remote stitch server."""
from __future__ import annotations

from contextlib import ExitStack
from pathlib import Path
import threading
from typing import Any, Dict, List, Optional, Tuple

import requests
from loguru import logger

from ..config import ServerConfig
from ..errors import NetworkError, StitchTimeoutError, ValidationError
from ..guidance.session import CaptureSession
from ..io.loader import save_panorama
from ..io.request_metadata import build_request_metadata, encode_request_metadata
from ..models.capture import CapturedPhoto
from .contract import HEALTH_PATH, METADATA_FIELD, PANORAMA_PATH, PHOTOS_FIELD, STITCH_PATH, StitchResponse


def _local_path(image_ref: str) -> Path:
    return Path(image_ref[len("file://"):] if image_ref.startswith("file://") else image_ref)


def upload_filename(index: int, photo: CapturedPhoto) -> str:
    return f"photo_{index}_y{round(photo.yaw)}_p{round(photo.pitch)}.jpg"


class StitchClient:
    """Upload a finished session to the stitch server.

    A health probe runs before any photo is sent; if it fails the upload is
    aborted. Connection failures are retried up to ``max_retries`` times,
    timeouts are not. :meth:`cancel` aborts an upload from another thread.
    """

    def __init__(self, config: Optional[ServerConfig] = None, http: Optional[requests.Session] = None) -> None:
        self.config = config or ServerConfig.from_env()
        self._http = http or requests.Session()
        self._cancelled = threading.Event()

    def check_health(self) -> Dict[str, Any]:
        url = self.config.endpoint(HEALTH_PATH)
        try:
            response = self._http.get(url, timeout=self.config.health_timeout_s)
        except requests.Timeout as exc:
            raise StitchTimeoutError(f"Health check timed out after {self.config.health_timeout_s:.0f} s") from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Stitch server unreachable at {self.config.server_url}: {exc}") from exc

        if not response.ok:
            raise NetworkError(f"Health check failed: HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise NetworkError("Health check returned invalid JSON") from exc
        if not isinstance(payload, dict) or payload.get("status") != "ok":
            raise NetworkError(f"Stitch server reports unhealthy status: {payload!r}")

        logger.debug("Stitch server healthy, capabilities={}", payload.get("capabilities"))
        return payload

    def submit(self, session: CaptureSession) -> StitchResponse:
        """Send every photo of ``session`` with its orientation metadata."""
        if session.photo_count == 0:
            raise ValidationError("Session has no photos to upload")
        self._cancelled.clear()
        self.check_health()

        metadata = encode_request_metadata(build_request_metadata(session, self.config.capture_type))
        attempts = self.config.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                response = self._post(session.photos, metadata)
                break
            except StitchTimeoutError:
                raise
            except NetworkError as exc:
                if self._cancelled.is_set() or attempt == attempts:
                    raise
                logger.warning("Upload attempt {}/{} failed, retrying: {}", attempt, attempts, exc)

        logger.info("Stitch server answered success={} outputRef={}", response.success, response.output_ref)
        return response.raise_for_failure()

    def download(self, output_ref: str, destination: Path) -> Path:
        """Fetch the stitched panorama into ``destination`` (a directory)."""
        if output_ref.startswith(("http://", "https://")):
            url = output_ref
        else:
            url = self.config.endpoint(f"{PANORAMA_PATH}/{output_ref}")
        try:
            response = self._http.get(url, timeout=self.config.request_timeout_s)
        except requests.Timeout as exc:
            raise StitchTimeoutError(f"Download of {output_ref} timed out") from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Download of {output_ref} failed: {exc}") from exc
        if not response.ok:
            raise NetworkError(f"Download of {output_ref} failed: HTTP {response.status_code}")

        panorama_id = Path(output_ref.rsplit("/", 1)[-1]).stem
        return save_panorama(response.content, destination, panorama_id)

    def cancel(self) -> None:
        """Abort the request in progress; it fails with :class:`NetworkError`."""
        self._cancelled.set()
        self._http.close()
        logger.info("Stitch upload cancelled")

    # ------------------------------------------------------------------
    def _post(self, photos: List[CapturedPhoto], metadata: str) -> StitchResponse:
        url = self.config.endpoint(STITCH_PATH)
        timeout: Tuple[float, float] = (self.config.connect_timeout_s, self.config.request_timeout_s)
        with ExitStack() as stack:
            files = []
            for index, photo in enumerate(photos):
                path = _local_path(photo.image_ref)
                try:
                    stream = stack.enter_context(path.open("rb"))
                except OSError as exc:
                    raise ValidationError(f"Captured photo {photo.id} is missing: {path}") from exc
                files.append((PHOTOS_FIELD, (upload_filename(index, photo), stream, "image/jpeg")))

            logger.info("Uploading {} photos to {}", len(files), url)
            try:
                response = self._http.post(url, files=files, data={METADATA_FIELD: metadata}, timeout=timeout)
            except requests.Timeout as exc:
                raise StitchTimeoutError(
                    f"Stitch request exceeded {self.config.request_timeout_s:.0f} s deadline"
                ) from exc
            except requests.RequestException as exc:
                if self._cancelled.is_set():
                    raise NetworkError("Stitch request cancelled") from exc
                raise NetworkError(f"Stitch request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            raise NetworkError(f"Stitch server returned HTTP {response.status_code} without a JSON body")

        result = StitchResponse.from_dict(payload)
        if not response.ok and (result.success or not result.error):
            raise NetworkError(f"Stitch server returned HTTP {response.status_code}")
        return result
