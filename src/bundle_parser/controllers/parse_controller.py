from __future__ import annotations

import logging
from typing import Optional

from bs4 import BeautifulSoup

from bundle_parser.model import Archive, ParseResult
from bundle_parser.services.ad_size_service import AdSizeService
from bundle_parser.services.reference_resolver_service import ReferenceResolverService

logger = logging.getLogger(__name__)


class ParseController:
    """
    Parses the entry document of a bundle once and hands the soup to the
    reference resolver and the ad-size detector.
    """

    def parse_primary(self, archive: Archive, primary: Optional[str]) -> ParseResult:
        if not primary or primary not in archive.files:
            return ParseResult()

        html = archive.read_text(primary)
        soup = BeautifulSoup(html, "html.parser")

        references = ReferenceResolverService(archive).resolve_references(soup, html, primary)
        ad_size = AdSizeService(archive).detect(soup, primary)

        if ad_size:
            logger.debug("Ad size %s via %s", ad_size.token, ad_size.source.method if ad_size.source else "?")
        return ParseResult(ad_size=ad_size, references=references)
