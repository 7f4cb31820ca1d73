# tests/auditor/conftest.py
import pytest

from bundle_auditor.controllers.audit_controller import AuditController
from bundle_auditor.model import AuditSettings


@pytest.fixture
def make_context(make_archive):
    """Bouwt een volledige CheckContext (discovery, parsing, metrics) voor een set bestanden."""
    def _make(files, name="creative_300x250.zip", settings=None, runtime=None, mode="zip"):
        controller = AuditController(settings or AuditSettings())
        return controller.build_context(make_archive(files, name=name, mode=mode), runtime=runtime)
    return _make
