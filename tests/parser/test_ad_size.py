# tests/parser/test_ad_size.py
from bs4 import BeautifulSoup

from bundle_parser.services.ad_size_service import AdSizeService, CssSnippet


def _detect(html, archive=None, path="index.html"):
    return AdSizeService(archive).detect(BeautifulSoup(html, "html.parser"), path)


def test_meta_ad_size():
    """De ad.size meta-tag wint van alle andere bronnen."""
    size = _detect('<head><meta name="ad.size" content="width=300, height=250"></head>'
                   '<style>#c{width:728px;height:90px}</style>')
    assert (size.width, size.height) == (300, 250)
    assert size.source.method == "meta"
    assert size.source.path == "index.html"
    assert size.token == "300x250"


def test_meta_with_zero_dimension_is_ignored():
    size = _detect('<meta name="ad.size" content="width=0, height=250">')
    assert size is None


def test_meta_named_by_dimensions():
    size = _detect('<meta name="728x90" content="">')
    assert (size.width, size.height) == (728, 90)
    assert size.source.method == "meta"


def test_gwd_admetadata():
    html = ('<script type="text/gwd-admetadata">'
            '{"creativeProperties": {"minWidth": 160, "minHeight": 600, "maxWidth": 160, "maxHeight": 600}}'
            '</script>')
    size = _detect(html)
    assert (size.width, size.height) == (160, 600)
    assert size.source.method == "gwd-admetadata"


def test_gwd_admetadata_invalid_json_falls_through_to_css():
    html = ('<script type="text/gwd-admetadata">{not json</script>'
            '<style>#ad { width: 320px; height: 50px; }</style>')
    size = _detect(html)
    assert (size.width, size.height) == (320, 50)
    assert size.source.method == "css-rule"


def test_css_largest_area_wins():
    """Tussen meerdere CSS-kandidaten wint de grootste oppervlakte."""
    html = "<style>#a { width: 728px; height: 90px; } #b { width: 300px; height: 250px; }</style>"
    size = _detect(html)
    assert (size.width, size.height) == (300, 250)


def test_css_tie_keeps_first_candidate():
    html = "<style>#a { width: 100px; height: 200px; } #b { width: 200px; height: 100px; }</style>"
    size = _detect(html)
    assert (size.width, size.height) == (100, 200)


def test_inline_style_size():
    size = _detect('<div style="width:970px;height:250px"></div>')
    assert (size.width, size.height) == (970, 250)


def test_linked_stylesheet_size(make_archive):
    archive = make_archive({
        "index.html": '<link rel="stylesheet" href="css/main.css">',
        "css/main.css": "#banner { width: 336px; height: 280px; }",
    })
    size = _detect(archive.read_text("index.html"), archive=archive)
    assert (size.width, size.height) == (336, 280)
    assert size.source.method == "css-file"
    assert size.source.path == "css/main.css"


def test_media_block_is_tagged():
    snippet = CssSnippet("@media (min-width: 1px) { #a { width: 300px; height: 600px; } }", "css-rule", "index.html")
    size = AdSizeService.parse_css_size(snippet)
    assert (size.width, size.height) == (300, 600)
    assert size.source.method == "css-media"


def test_no_size_found():
    assert _detect("<html><body><p>hello</p></body></html>") is None
