"""
Export the talk notebooks to static HTML.

Usage:
    export-notebooks [--notebooks-dir notebooks] [--output-dir _site]
                     [--cache-dir export_cache] [--marimo marimo] [-v]

Running the notebooks is expensive (the DFT cells in particular), so every export
is cached under the hash of the notebook source: a notebook that did not change
since the last export is copied from the cache instead of being run again.
"""

from __future__ import annotations

import argparse
import hashlib
import logging
from pathlib import Path
import shlex
import shutil
import subprocess
import sys

logger = logging.getLogger(__name__)


def notebook_hash(notebook: Path) -> str:
    return hashlib.sha256(notebook.read_bytes()).hexdigest()


def find_notebooks(notebooks_dir: Path) -> list[Path]:
    """Every marimo notebook in the directory, in talk order."""
    if not notebooks_dir.is_dir():
        raise FileNotFoundError(f"No notebook directory at {notebooks_dir}")
    return sorted(
        path for path in notebooks_dir.glob("*.py")
        if "marimo.App" in path.read_text()
    )


def cached_export(cache_dir: Path, notebook: Path) -> Path:
    return cache_dir / f"{notebook.stem}-{notebook_hash(notebook)[:16]}.html"


def export_notebook(
    notebook: Path,
    output_dir: Path,
    cache_dir: Path | None = None,
    marimo: str = "marimo",
) -> Path:
    """
    Export a single notebook, going through the cache when one is given.

    Returns:
        Path: The exported HTML file.

    Raises:
        subprocess.CalledProcessError: If the export itself fails.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / f"{notebook.stem}.html"

    cached = None if cache_dir is None else cached_export(cache_dir, notebook)
    if cached is not None and cached.is_file():
        logger.info("%s unchanged, using cached export", notebook.name)
        shutil.copyfile(cached, target)
        return target

    logger.info("Exporting %s", notebook.name)
    subprocess.run(
        shlex.split(marimo) + ["export", "html", str(notebook), "-o", str(target)],
        check=True,
    )
    if cached is not None:
        cache_dir.mkdir(parents=True, exist_ok=True)
        for stale in cache_dir.glob(f"{notebook.stem}-*.html"):
            stale.unlink()
        shutil.copyfile(target, cached)
    return target


def export_all(
    notebooks_dir: Path,
    output_dir: Path,
    cache_dir: Path | None = None,
    marimo: str = "marimo",
) -> tuple[list[Path], list[Path]]:
    """
    Export every notebook; one failing notebook does not stop the others.

    Returns:
        tuple[list[Path], list[Path]]: The exported HTML files and the notebooks
            that failed.
    """
    exported, failed = [], []
    for notebook in find_notebooks(notebooks_dir):
        try:
            exported.append(
                export_notebook(notebook, output_dir, cache_dir=cache_dir, marimo=marimo)
            )
        except subprocess.CalledProcessError as e:
            logger.error("Exporting %s failed with exit code %s", notebook, e.returncode)
            failed.append(notebook)
    return exported, failed


def write_index(output_dir: Path, exported: list[Path]) -> Path:
    links = "\n".join(
        f'    <li><a href="{html.name}">{html.stem}</a></li>' for html in exported
    )
    index = output_dir / "index.html"
    index.write_text(
        "<!DOCTYPE html>\n<html>\n<body>\n  <ul>\n"
        f"{links}\n"
        "  </ul>\n</body>\n</html>\n"
    )
    return index


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="export-notebooks",
        description="Export the talk notebooks to static HTML.",
    )
    parser.add_argument("--notebooks-dir", type=Path, default=Path("notebooks"))
    parser.add_argument("--output-dir", type=Path, default=Path("_site"))
    parser.add_argument(
        "--cache-dir", type=Path, default=None,
        help="Reuse exports of unchanged notebooks from here",
    )
    parser.add_argument("--marimo", default="marimo", help="The marimo executable")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        exported, failed = export_all(
            args.notebooks_dir, args.output_dir, args.cache_dir, args.marimo
        )
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    write_index(args.output_dir, exported)
    logger.info("Exported %d notebook(s), %d failed", len(exported), len(failed))
    return 1 if len(failed) > 0 else 0


if __name__ == "__main__":
    sys.exit(main())
