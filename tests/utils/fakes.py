"""Test doubles for the asset origin and the transcoder."""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import httpx

ASSET_BASE_URL = "https://assets.test"


class FakeAssetServer:
    """
    In-process HTTP origin for scene assets.

    Register bodies with ``add``; anything unregistered answers 404.
    """

    def __init__(self):
        self.routes: Dict[str, Tuple[int, bytes]] = {}
        self.requested: List[str] = []
        self.client = httpx.Client(transport=httpx.MockTransport(self._handle))

    def add(self, path: str, body: bytes = b"asset-bytes", status_code: int = 200) -> str:
        url = f"{ASSET_BASE_URL}/{path.lstrip('/')}"
        self.routes[url] = (status_code, body)
        return url

    def url(self, path: str) -> str:
        return f"{ASSET_BASE_URL}/{path.lstrip('/')}"

    def _handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requested.append(url)
        if url not in self.routes:
            return httpx.Response(404, content=b"not found")
        status_code, body = self.routes[url]
        return httpx.Response(status_code, content=body)


class FakeRunner:
    """Stands in for execute_transcode: records the call, writes an output file."""

    def __init__(self, output: bytes = b"fake-video-bytes", error: Optional[Exception] = None):
        self.output = output
        self.error = error
        self.calls: List[dict] = []
        self.files_at_call: List[Path] = []

    def __call__(
        self,
        cmd,
        output_path,
        total_duration,
        progress_callback=None,
        timeout_seconds=None,
    ) -> Path:
        output_path = Path(output_path)
        self.calls.append({
            "cmd": list(cmd),
            "output_path": output_path,
            "total_duration": total_duration,
            "timeout_seconds": timeout_seconds,
        })
        self.files_at_call = sorted(output_path.parent.iterdir())
        if self.error is not None:
            raise self.error
        if progress_callback:
            for percent in (25, 50, 75, 100):
                progress_callback(percent, f"Rendering: {percent}%")
        output_path.write_bytes(self.output)
        return output_path

