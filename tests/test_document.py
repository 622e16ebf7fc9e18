#!/usr/bin/env python3
"""Tests for Document and obligation identity."""

from compliance import Document, DocumentKind
from compliance.document import obligation_key, obligation_label


def make_doc(kind, expiry="2025-06-01", custom=None):
    return Document("d1", "v1", kind, "2025-01-01T00:00:00+00:00", expiry_date=expiry, custom_type_name=custom)


class TestObligationKey:
    """Tests for obligation_key and obligation_label."""

    def test_custom_name_only_kept_for_other(self):
        assert obligation_key(DocumentKind.INSURANCE, "ignored") == (DocumentKind.INSURANCE, None)
        assert obligation_key(DocumentKind.OTHER, "Goods permit") == (DocumentKind.OTHER, "Goods permit")

    def test_label_uses_custom_name_for_other(self):
        assert obligation_label(DocumentKind.OTHER, "Goods permit") == "Goods permit"
        assert obligation_label(DocumentKind.FITNESS) == "Fitness"

    def test_other_without_name_falls_back_to_kind(self):
        assert obligation_label(DocumentKind.OTHER) == "Other"


class TestDocument:
    """Tests for Document properties."""

    def test_custom_name_dropped_for_standard_kinds(self):
        doc = make_doc(DocumentKind.INSURANCE, custom="Something")
        assert doc.custom_type_name is None
        assert doc.key == (DocumentKind.INSURANCE, None)

    def test_other_documents_with_different_names_are_distinct(self):
        a = make_doc(DocumentKind.OTHER, custom="Goods permit")
        b = make_doc(DocumentKind.OTHER, custom="Fire certificate")
        assert a.key != b.key
        assert a.matches(DocumentKind.OTHER, "Goods permit")
        assert not a.matches(DocumentKind.OTHER, "Fire certificate")

    def test_has_expiry(self):
        assert make_doc(DocumentKind.PERMIT).has_expiry
        assert not make_doc(DocumentKind.PERMIT, expiry=None).has_expiry
        assert not make_doc(DocumentKind.PERMIT, expiry="2025-02-31").has_expiry
