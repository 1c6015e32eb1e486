"""
Download of training data that is too large to ship with the notebooks.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
import tarfile
import urllib.error
import urllib.request

from pyiron_workflow import as_function_node

logger = logging.getLogger(__name__)

TIAL_TUTORIAL_URL = (
    "https://github.com/ACEsuit/ACEData/raw/main/datasets/TiAl_tutorial.tar.gz"
)


def _from_archive(payload: bytes, member: str) -> bytes:
    with tarfile.open(fileobj=io.BytesIO(payload), mode="r:*") as archive:
        for info in archive.getmembers():
            if info.isfile() and Path(info.name).name == member:
                return archive.extractfile(info).read()
    raise FileNotFoundError(f"No {member} in the downloaded archive")


def fetch_dataset(
    url: str,
    destination: str | Path,
    member: str | None = None,
    timeout: float = 60.0,
) -> Path:
    """
    Download a dataset to `destination`, unless it is already there.

    Tarballs (`.tar.gz`, `.tgz`) are unpacked and only `member` (by default the
    file name of `destination`) is kept.

    Raises:
        urllib.error.URLError: If the download fails.
        FileNotFoundError: If the archive does not contain `member`.
    """
    destination = Path(destination)
    if destination.is_file():
        return destination

    logger.info("Downloading %s", url)
    try:
        with urllib.request.urlopen(url, timeout=timeout) as response:
            payload = response.read()
    except urllib.error.URLError as e:
        logger.error("Downloading %s failed: %s", url, e.reason)
        raise

    if url.endswith((".tar.gz", ".tgz")):
        payload = _from_archive(payload, destination.name if member is None else member)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(payload)
    return destination


@as_function_node("filename")
def FetchDataset(
    destination: str = "data/TiAl_tutorial.xyz",
    url: str = TIAL_TUTORIAL_URL,
) -> Path:
    filename = fetch_dataset(url, destination)
    return filename
