"""Tests for the per-engine dialects."""

import pytest

from alphapeptnorm.columns import Field
from alphapeptnorm.dialects import (
    DiannDialect,
    MSAlignDialect,
    MSFraggerDialect,
    TopPICDialect,
    create_dialect,
    dots_to_terminus,
    first_scan_number,
    get_dialect_class,
    parse_spectrum_name,
)
from alphapeptnorm.exceptions import RecordError
from alphapeptnorm.modifications import ModificationAnnotationDecoder, ModificationOccurrence
from alphapeptnorm.registry import ModificationDefinition, ModificationKind, ModificationMassRegistry


class TestLookup:
    """Test dialect lookup by name."""

    @pytest.mark.parametrize("name,cls", [
        ("diann", DiannDialect),
        ("DIA-NN", DiannDialect),
        ("TopPIC", TopPICDialect),
        ("msalign", MSAlignDialect),
        ("MSFragger", MSFraggerDialect),
    ])
    def test_names(self, name, cls):
        assert get_dialect_class(name) is cls

    def test_unknown(self):
        with pytest.raises(ValueError, match="mascot"):
            create_dialect("mascot")

    def test_synopsis_name(self, tmp_path):
        """Output base names carry the engine tag."""
        assert create_dialect("diann").synopsis_name(tmp_path / "report.tsv") == "report_diann"


class TestDiann:
    """Test DIA-NN row extraction."""

    def test_extract(self, diann_records, registry):
        header, rows = diann_records
        dialect = DiannDialect()
        mapping = dialect.resolve_columns(header)

        record = dialect.extract_record(rows[1], mapping, line_number=3)
        decoded = dialect.decode_modifications(record, dialect.create_decoder(registry))

        assert record.dataset == "RunA"
        assert record.charge == 2
        assert record.scan is None
        assert record.elution_time == pytest.approx(2.6)
        assert record.protein == "P1"
        assert record.scores["QValue"] == "0.05"
        assert dialect.needs_scan_resolution(record)
        assert decoded.clean_sequence == "AAALEAMK"
        assert [(m.residue, m.position) for m in decoded.modifications] == [("M", 7)]

    def test_short_row(self, diann_records):
        """Rows with fewer than 15 fields are record errors."""
        header, _ = diann_records
        dialect = DiannDialect()

        with pytest.raises(RecordError):
            dialect.extract_record(["RunA", "ELVISK", "2"], dialect.resolve_columns(header), 5)

    def test_sequence_mismatch(self, diann_records, registry):
        """Modified and stripped sequences must agree."""
        header, rows = diann_records
        row = list(rows[0])
        row[header.index("Stripped.Sequence")] = "ELVISR"
        dialect = DiannDialect()

        record = dialect.extract_record(row, dialect.resolve_columns(header), 2)

        with pytest.raises(RecordError):
            dialect.decode_modifications(record, dialect.create_decoder(registry))

    def test_additional_proteins(self, diann_records):
        """Protein groups are split into lead and additional proteins."""
        header, rows = diann_records
        row = list(rows[0])
        row[header.index("Protein.Ids")] = "P1;P2;P3"
        dialect = DiannDialect()

        record = dialect.extract_record(row, dialect.resolve_columns(header), 2)

        assert record.protein == "P1"
        assert record.additional_proteins == ["P2", "P3"]


class TestTopPIC:
    """Test TopPIC proteoform handling."""

    HEADER = ["Data file name", "Scan(s)", "Charge", "Proteoform", "P-value", "E-value"]

    def test_extract_flanks(self):
        dialect = TopPICDialect()
        mapping = dialect.resolve_columns(self.HEADER)

        record = dialect.extract_record(
            [r"C:\data\Sample1.mzML", "1234 1236", "3", ".MS(ST)[79.97]PEPTIDER.A", "0.01", "1"],
            mapping,
            2,
        )

        assert record.dataset == "Sample1"
        assert record.scan == 1234
        assert record.prefix == "-"
        assert record.suffix == "A"
        assert record.peptide == "MS(ST)[79.97]PEPTIDER"

    def test_e_value_fallback(self):
        """Without a P-value column the E-value becomes the primary score."""
        dialect = TopPICDialect()

        dialect.resolve_columns(["Scan(s)", "Charge", "Proteoform", "E-value"])

        assert dialect.primary_score_column == "EValue"
        assert TopPICDialect.primary_score_column == "PValue"
        assert dialect.thresholds()[0].score_column == "EValue"

    def test_static_modifications(self):
        """Static definitions are added to decoded proteoforms."""
        registry = ModificationMassRegistry(
            [ModificationDefinition("Carbamidomethyl", 57.021464, "C", ModificationKind.STATIC)]
        )
        dialect = TopPICDialect()
        mapping = dialect.resolve_columns(self.HEADER)
        record = dialect.extract_record(["S.mzML", "5", "2", "K.ACD[15.99]CK.A", "0.1", "1"], mapping, 2)

        decoded = dialect.decode_modifications(record, dialect.create_decoder(registry))

        assert sorted((m.residue, m.position) for m in decoded.modifications) == [
            ("C", 2), ("C", 4), ("D", 3)
        ]

    def test_helpers(self):
        assert first_scan_number("1234 1236") == 1234
        assert first_scan_number("") is None
        assert dots_to_terminus(".MSTNPK.A") == "-.MSTNPK.A"
        assert dots_to_terminus("K.MSTNPK.") == "K.MSTNPK.-"


class TestMSFragger:
    """Test MSFragger PSM handling."""

    def test_spectrum_name(self):
        assert parse_spectrum_name("Sample2.01000.01000.2") == ("Sample2", 1000, 2)
        assert parse_spectrum_name("my.run.00012.00012.3") == ("my.run", 12, 3)

    def test_bad_spectrum_name(self):
        with pytest.raises(RecordError):
            parse_spectrum_name("Sample2.abc.abc.2")
        with pytest.raises(RecordError):
            parse_spectrum_name("Sample2")

    def test_modification_list(self, registry):
        """Assigned modifications are read from the separate list."""
        dialect = MSFraggerDialect()
        header = ["Spectrum", "Peptide", "Prev AA", "Next AA", "Charge", "Expectation",
                  "Hyperscore", "Assigned Modifications", "Protein"]
        mapping = dialect.resolve_columns(header)
        record = dialect.extract_record(
            ["S2.00010.00010.2", "AAALEAMK", "K", "P", "2", "0.01", "30",
             "7M(15.9949), N-term(42.0106)", "sp|P1|X"],
            mapping,
            2,
        )

        decoded = dialect.decode_modifications(record, ModificationAnnotationDecoder(registry=registry))

        assert record.dataset == "S2"
        assert record.scan == 10
        assert (record.prefix, record.suffix) == ("K", "P")
        assert [(m.residue, m.position) for m in decoded.modifications] == [("M", 7), ("A", 1)]
        assert dialect.annotated_peptide(record, decoded) == "A[+42.0106]AALEAM[+15.9949]K"

    def test_unparsable_entries_reported(self):
        """Invalid list entries are reported as unresolved names."""
        registry = ModificationMassRegistry()
        dialect = MSFraggerDialect()
        mapping = dialect.resolve_columns(["Spectrum", "Peptide", "Charge", "Assigned Modifications"])
        record = dialect.extract_record(["S.1.1.2", "PEPTIDE", "2", "3X"], mapping, 2)

        dialect.decode_modifications(record, ModificationAnnotationDecoder(registry=registry))

        assert registry.unresolved_names == ["3x"]

    def test_score_columns(self):
        assert MSFraggerDialect().score_columns == [
            "EValue", "Hyperscore", "Nextscore", "PeptideProphetProbability"
        ]
