"""Download the raw CSV tables.

Remote tables are fetched with requests (certifi CA bundle) and parsed with
pandas; a plain path or ``file://`` URL is read from disk. Any failure raises
``FetchError`` and ends the run.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from io import StringIO
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import urlparse

import certifi
import pandas as pd
import requests
from loguru import logger

from covid_report.data.sources import SourceSpec
from covid_report.errors import FetchError


def _local_path(url: str) -> Path | None:
    parsed = urlparse(url)
    if parsed.scheme == 'file':
        return Path(parsed.path)
    if parsed.scheme in ('http', 'https'):
        return None
    return Path(url)


def _read_text(spec: SourceSpec, timeout: float, verify: bool) -> str:
    path = _local_path(spec.url)
    if path is not None:
        try:
            return path.read_text(encoding='utf-8')
        except OSError as e:
            raise FetchError(f"Cannot read {path}: {e}", spec.name) from e

    try:
        response = requests.get(spec.url, timeout=timeout, verify=certifi.where() if verify else False)
        response.raise_for_status()
    except requests.RequestException as e:
        raise FetchError(f"Download of {spec.url} failed: {e}", spec.name, {'url': spec.url}) from e
    return response.text


def fetch_table(spec: SourceSpec, timeout: float = 60, verify: bool = True) -> pd.DataFrame:
    logger.info(f"Fetching {spec.name} from {spec.url}")
    text = _read_text(spec, timeout, verify)
    if not text.strip():
        raise FetchError(f"{spec.name}: empty response", spec.name, {'url': spec.url})

    try:
        table = pd.read_csv(StringIO(text))
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise FetchError(f"{spec.name}: not a CSV table ({e})", spec.name, {'url': spec.url}) from e

    missing = [c for c in spec.required_columns if c not in table.columns]
    if missing:
        raise FetchError(
            f"{spec.name}: missing column(s) {', '.join(missing)}",
            spec.name,
            {'url': spec.url, 'columns': list(table.columns)},
        )

    logger.info(f"Fetched {spec.name}: {len(table)} rows, {len(table.columns)} columns")
    return table


def fetch_all(specs: Iterable[SourceSpec], fetch_config: dict[str, Any]) -> dict[str, pd.DataFrame]:
    """Fetch every table concurrently and return them once all have arrived."""
    specs = list(specs)
    timeout = fetch_config.get('timeout', 60)
    verify = fetch_config.get('verify_tls', True)
    workers = max(1, min(fetch_config.get('max_workers', 1), len(specs)))

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {spec.name: pool.submit(fetch_table, spec, timeout, verify) for spec in specs}
        return {name: future.result() for name, future in futures.items()}
