# tests/parser/test_reference_resolver.py
import pytest
from bs4 import BeautifulSoup

from bundle_parser.services.reference_resolver_service import ReferenceResolverService


def _resolve(archive, primary="index.html"):
    html = archive.read_text(primary)
    soup = BeautifulSoup(html, "html.parser")
    return ReferenceResolverService(archive).resolve_references(soup, html, primary)


# --- resolve_local ---

@pytest.mark.parametrize("url, expected", [
    ("./a/b.png", "dir/a/b.png"),
    ("a/b.png", "dir/a/b.png"),
    ("../b.png", "b.png"),
    ("/root.png", "root.png"),
    ("img/x.png?v=2#frag", "dir/img/x.png"),
])
def test_resolve_local_relative_to_entry_dir(url, expected):
    """Paden worden opgelost tegen de map van het verwijzende bestand."""
    assert ReferenceResolverService.resolve_local("dir/index.html", url) == expected


def test_resolve_local_dot_slash_equals_plain():
    """'./a/b.png' en 'a/b.png' leveren hetzelfde genormaliseerde pad op."""
    a = ReferenceResolverService.resolve_local("dir/index.html", "./a/b.png")
    b = ReferenceResolverService.resolve_local("dir/index.html", "a/b.png")
    assert a == b == "dir/a/b.png"


def test_resolve_local_parent_past_root_is_dropped():
    """Een '..' voorbij de root wordt genegeerd in plaats van een fout te geven."""
    assert ReferenceResolverService.resolve_local("index.html", "../../logo.png") == "logo.png"


@pytest.mark.parametrize("url", [
    "https://cdn.example.com/a.js",
    "http://cdn.example.com/a.js",
    "data:image/png;base64,AAAA",
    "javascript:void(0)",
])
def test_resolve_local_non_local_urls(url):
    assert ReferenceResolverService.resolve_local("index.html", url) is None


# --- resolve_references ---

def test_scenario_meta_and_single_image(make_archive):
    """Eén <img src="logo.png"> die in de root bestaat geeft één reference met in_zip=True."""
    archive = make_archive({
        "index.html": '<html><head><meta name="ad.size" content="width=300, height=250"></head>'
                      '<body><img src="logo.png"></body></html>',
        "logo.png": b"png",
    })
    refs = _resolve(archive)

    assert len(refs) == 1
    ref = refs[0]
    assert ref.type == "image"
    assert ref.in_zip is True
    assert ref.normalized == "logo.png"
    assert ref.from_path == "index.html"
    assert ref.external is False


def test_references_cover_markup_types(make_archive):
    """Afbeeldingen, scripts, stylesheets, media en anchors worden allemaal verzameld."""
    archive = make_archive({
        "index.html": """<html><head>
<link rel="stylesheet" href="css/style.css">
<script src="js/main.js"></script>
<script src="https://s0.2mdn.net/ads/studio/Enabler.js"></script>
</head><body>
<img src="img/a.png">
<video src="clip.mp4"></video>
<a href="https://example.com">x</a>
</body></html>""",
        "css/style.css": "body { background: url('../img/bg.jpg'); }",
        "js/main.js": "console.log(1);",
        "img/a.png": b"a",
        "img/bg.jpg": b"b",
    })
    refs = _resolve(archive)
    by_type = {}
    for r in refs:
        by_type.setdefault(r.type, []).append(r)

    assert {r.normalized for r in by_type["image"]} == {"img/a.png"}
    assert by_type["stylesheet"][0].normalized == "css/style.css"
    assert {r.url for r in by_type["script"]} == {"js/main.js", "https://s0.2mdn.net/ads/studio/Enabler.js"}
    assert by_type["media"][0].in_zip is False
    assert by_type["anchor"][0].external is True

    # url() in een gelinkte stylesheet wordt opgelost tegen het CSS-bestand zelf
    css_ref = next(r for r in by_type["font"] if r.from_path == "css/style.css")
    assert css_ref.normalized == "img/bg.jpg"
    assert css_ref.in_zip is True
    assert css_ref.line == 1


def test_external_reference_has_no_normalized_path(make_archive):
    archive = make_archive({"index.html": '<script src="https://cdn.example.com/lib.js"></script>'})
    ref = _resolve(archive)[0]
    assert ref.external is True
    assert ref.secure is True
    assert ref.normalized is None
    assert ref.in_zip is False


def test_case_insensitive_lookup(make_archive):
    """Assets worden hoofdletterongevoelig gevonden, zoals ad servers dat doen."""
    archive = make_archive({"index.html": '<img src="IMG/Logo.PNG">', "img/logo.png": b"x"})
    ref = _resolve(archive)[0]
    assert ref.in_zip is True
    assert archive.lookup(ref.normalized) == "img/logo.png"


def test_missing_asset_is_not_in_zip(make_archive):
    archive = make_archive({"index.html": '<img src="missing.png">'})
    ref = _resolve(archive)[0]
    assert ref.normalized == "missing.png"
    assert ref.in_zip is False


def test_inline_style_and_style_block_urls(make_archive):
    archive = make_archive({
        "index.html": '<html><head>\n<style>\n.a { background: url("bg.png"); }\n</style>\n</head>'
                      '<body><div style="background-image: url(\'hero.jpg\')"></div></body></html>',
        "bg.png": b"1",
        "hero.jpg": b"2",
    })
    refs = _resolve(archive)
    assert {r.normalized for r in refs} == {"bg.png", "hero.jpg"}
    assert all(r.in_zip for r in refs)


def test_createjs_manifest_entries(make_archive):
    """CreateJS manifests worden als afbeelding-references herkend."""
    archive = make_archive({
        "index.html": '<script>lib.properties = { manifest: [ {src:"images/sprite.png", id:"sprite"} ] };</script>',
        "images/sprite.png": b"x",
    })
    refs = _resolve(archive)
    assert [r.normalized for r in refs if r.type == "image"] == ["images/sprite.png"]


def test_gwd_image_source(make_archive):
    archive = make_archive({"index.html": '<gwd-image source="assets/hero.jpg"></gwd-image>', "assets/hero.jpg": b"x"})
    refs = _resolve(archive)
    assert refs[0].type == "image"
    assert refs[0].in_zip is True


def test_reference_serializes_from_alias(make_archive):
    archive = make_archive({"index.html": '<img src="a.png">', "a.png": b"x"})
    data = _resolve(archive)[0].model_dump(by_alias=True)
    assert data["from"] == "index.html"
