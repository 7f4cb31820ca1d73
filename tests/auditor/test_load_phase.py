# tests/auditor/test_load_phase.py
import gzip

from bundle_parser.controllers.parse_controller import ParseController
from bundle_auditor.services.load_phase_service import (
    CompressedSizeCache,
    calculate_load_phase_metrics,
    referenced_paths,
    unreferenced_paths,
)


def _metrics(archive, primary="index.html", cache=None):
    refs = ParseController().parse_primary(archive, primary).references
    return calculate_load_phase_metrics(archive, refs, primary, cache or CompressedSizeCache()), refs


def test_unreferenced_file_is_subload(make_archive, simple_files):
    """Een nergens gerefereerd extra.js telt volledig mee als subload en niet als initial."""
    files = dict(simple_files, **{"extra.js": "console.log('never loaded');" * 20})
    archive = make_archive(files)
    metrics, _ = _metrics(archive)
    without_extra, _ = _metrics(make_archive(simple_files))

    assert metrics.subload_requests == 1
    assert metrics.subload_bytes == len(gzip.compress(archive.files["extra.js"]))
    assert metrics.initial_bytes == without_extra.initial_bytes
    assert metrics.initial_requests == without_extra.initial_requests == 2


def test_phase_partition(make_archive):
    """Elk bestand zit in precies één van beide sets en de aantallen tellen op."""
    archive = make_archive({
        "index.html": '<img src="a.png"><script src="https://cdn.example.com/x.js"></script>',
        "a.png": b"a" * 100,
        "b.png": b"b" * 100,
        "docs/readme.txt": "notes",
    })
    metrics, refs = _metrics(archive)

    referenced = referenced_paths(refs, "index.html")
    unreferenced = unreferenced_paths(archive, refs, "index.html")
    for path in archive.files:
        assert (path.lower() in referenced) != (path in unreferenced)

    assert metrics.initial_requests + metrics.subload_requests == metrics.total_requests
    assert metrics.total_requests == len(archive.files)
    assert metrics.initial_hosts == metrics.total_hosts == 1
    assert metrics.total_bytes == sum(len(v) for v in archive.files.values())


def test_no_primary_puts_everything_in_subload(make_archive):
    archive = make_archive({"a.png": b"x", "b.js": "y"})
    metrics = calculate_load_phase_metrics(archive, [], "", CompressedSizeCache())
    assert metrics.initial_requests == 0
    assert metrics.initial_bytes == 0
    assert metrics.subload_requests == 2


def test_cache_is_keyed_by_bundle(make_archive):
    """Bestanden met dezelfde naam in verschillende bundles krijgen elk hun eigen maat."""
    cache = CompressedSizeCache()
    small = make_archive({"index.html": "<html></html>"}, name="a.zip")
    large = make_archive({"index.html": "<html>" + "lorem ipsum " * 500 + "</html>"}, name="b.zip")

    size_small = cache.size_of(small, "index.html")
    size_large = cache.size_of(large, "index.html")

    assert size_small != size_large
    assert len(cache) == 2
    assert cache.size_of(small, "index.html") == size_small
    assert len(cache) == 2

    cache.clear()
    assert len(cache) == 0
