# src/bundle_auditor/services/load_phase_service.py
import gzip
import logging
from typing import Dict, List, Set, Tuple
from urllib.parse import urlparse

from bundle_parser.model import Archive, Reference
from bundle_auditor.model import LoadPhaseMetrics

logger = logging.getLogger(__name__)


class CompressedSizeCache:
    """
    Gzip size per (bundle, path).

    One instance belongs to one audit run. Keying on the bundle id keeps
    same-named files of different bundles apart.
    """

    def __init__(self):
        self._sizes: Dict[Tuple[str, str], int] = {}

    def size_of(self, archive: Archive, path: str) -> int:
        key = (archive.id, path)
        if key not in self._sizes:
            self._sizes[key] = len(gzip.compress(archive.files[path]))
        return self._sizes[key]

    def clear(self) -> None:
        self._sizes.clear()

    def __len__(self) -> int:
        return len(self._sizes)


def referenced_paths(references: List[Reference], primary: str) -> Set[str]:
    """Lowercased archive paths reachable from the entry document, the entry itself included."""
    referenced = {primary.lower()} if primary else set()
    for ref in references:
        if ref.in_zip:
            referenced.add((ref.normalized or ref.url).lower())
    return referenced


def unreferenced_paths(archive: Archive, references: List[Reference], primary: str) -> List[str]:
    referenced = referenced_paths(references, primary)
    return [p for p in archive.files if p.lower() not in referenced]


def calculate_load_phase_metrics(
        archive: Archive,
        references: List[Reference],
        primary: str,
        cache: CompressedSizeCache
) -> LoadPhaseMetrics:
    """
    Splits the bundle into initial and subload weight.

    Every packaged reference plus the entry file is initial; every archive
    file no reference reaches is subload. External references only count
    towards host totals.

    Args:
        archive: The bundle under audit.
        references: Resolved references of the entry document.
        primary: Archive path of the entry document.
        cache: The run-scoped compressed-size cache.

    Returns:
        LoadPhaseMetrics: byte, request and host counts per phase.
    """
    referenced = referenced_paths(references, primary)
    unreferenced = {p.lower() for p in archive.files if p.lower() not in referenced}

    initial_hosts: Set[str] = set()
    total_hosts: Set[str] = set()
    for ref in references:
        if not ref.external:
            continue
        try:
            host = urlparse(ref.url).hostname
        except ValueError as e:
            logger.debug("Skipping unparsable external url %r: %s", ref.url, e)
            continue
        if host:
            initial_hosts.add(host)
            total_hosts.add(host)

    initial_bytes = 0
    for path in referenced:
        real = archive.lookup(path)
        if real:
            initial_bytes += cache.size_of(archive, real)

    subload_bytes = 0
    for path in unreferenced:
        real = archive.lookup(path)
        if real:
            subload_bytes += cache.size_of(archive, real)

    metrics = LoadPhaseMetrics(
        initial_bytes=initial_bytes,
        subload_bytes=subload_bytes,
        total_bytes=sum(len(data) for data in archive.files.values()),
        initial_requests=len(referenced),
        subload_requests=len(unreferenced),
        total_requests=len(referenced) + len(unreferenced),
        initial_hosts=len(initial_hosts),
        total_hosts=len(total_hosts)
    )
    logger.debug(
        "Load phases for %s: initial %d B / %d req, subload %d B / %d req",
        archive.name, metrics.initial_bytes, metrics.initial_requests,
        metrics.subload_bytes, metrics.subload_requests
    )
    return metrics
