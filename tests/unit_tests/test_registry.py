"""Tests for modification definitions and name -> mass resolution."""

import pytest

from alphapeptnorm.constants import OXIDATION_MASS, PHOSPHO_MASS
from alphapeptnorm.diagnostics import RunDiagnostics
from alphapeptnorm.exceptions import ErrorCode, ResultFileIOError
from alphapeptnorm.registry import (
    UNRESOLVED_MASS,
    ModificationDefinition,
    ModificationKind,
    ModificationMassRegistry,
    ModificationPosition,
    parse_empirical_formula,
    parse_modification_line,
    read_modification_parameters,
)


class TestEmpiricalFormula:
    """Test mass calculation from empirical formulas."""

    def test_carbamidomethyl(self):
        """C2H3NO is carbamidomethylation."""
        assert parse_empirical_formula("C2H3NO") == pytest.approx(57.021464, abs=1e-5)

    def test_phospho(self):
        """HO3P is phosphorylation."""
        assert parse_empirical_formula("HO3P") == pytest.approx(79.966331, abs=1e-5)

    def test_negative_count(self):
        """Negative counts subtract atoms."""
        assert parse_empirical_formula("H-1") == pytest.approx(-1.007825, abs=1e-5)

    def test_unknown_element(self):
        """Unknown elements are rejected."""
        with pytest.raises(ValueError):
            parse_empirical_formula("Xx2")

    def test_garbage(self):
        """Unparsable text is rejected."""
        with pytest.raises(ValueError):
            parse_empirical_formula("C2 H3")


class TestParameterLines:
    """Test parsing of parameter-file modification lines."""

    def test_static_mod(self):
        """StaticMod lines become fixed definitions."""
        definition = parse_modification_line("StaticMod=C2H3NO, C, fix, any, Carbamidomethyl")

        assert definition.name == "Carbamidomethyl"
        assert definition.residues == "C"
        assert definition.kind == ModificationKind.STATIC
        assert definition.position == ModificationPosition.ANYWHERE
        assert definition.mass == pytest.approx(57.021464, abs=1e-5)

    def test_dynamic_mod_numeric_mass(self):
        """Numeric masses and terminal positions are accepted."""
        definition = parse_modification_line("DynamicMod=42.010565, *, opt, Prot-N-term, Acetyl")

        assert definition.kind == ModificationKind.DYNAMIC
        assert definition.position == ModificationPosition.PROT_N_TERM
        assert definition.mass == pytest.approx(42.010565)

    def test_bare_definition(self):
        """Definition lines without a key are accepted."""
        definition = parse_modification_line("O1, M, opt, any, Oxidation   # comment")

        assert definition.name == "Oxidation"
        assert definition.mass == pytest.approx(OXIDATION_MASS, abs=1e-5)

    def test_ignored_lines(self):
        """Comments, unrelated keys and None values yield None."""
        assert parse_modification_line("# StaticMod=C2H3NO, C, fix, any, X") is None
        assert parse_modification_line("   ") is None
        assert parse_modification_line("PrecursorMassTolerance=20ppm") is None
        assert parse_modification_line("CustomAA=C5H7NO3, U, custom, U, Pyroglu") is None
        assert parse_modification_line("StaticMod=None") is None

    def test_too_few_fields(self):
        """Incomplete definitions are configuration errors."""
        with pytest.raises(ValueError):
            parse_modification_line("DynamicMod=O1, M, opt")

    def test_unknown_position(self):
        """Positions outside the vocabulary are rejected."""
        with pytest.raises(ValueError):
            parse_modification_line("DynamicMod=O1, M, opt, middle, Oxidation")

    def test_read_file(self, tmp_path):
        """Definitions are read in file order."""
        path = tmp_path / "MSGFPlus_Mods.txt"
        path.write_text(
            "# Modifications\n"
            "NumMods=2\n"
            "StaticMod=C2H3NO, C, fix, any, Carbamidomethyl\n"
            "DynamicMod=HO3P, STY, opt, any, Phospho\n"
        )

        definitions = read_modification_parameters(path)

        assert [d.name for d in definitions] == ["Carbamidomethyl", "Phospho"]

    def test_read_file_reports_line(self, tmp_path):
        """A malformed line is reported with its line number."""
        path = tmp_path / "mods.txt"
        path.write_text("StaticMod=C2H3NO, C, fix, any, Carbamidomethyl\nDynamicMod=Qq, M\n")

        with pytest.raises(ValueError, match="line 2"):
            read_modification_parameters(path)

    def test_missing_file(self, tmp_path):
        """An unreadable parameter file is an I/O error."""
        with pytest.raises(ResultFileIOError):
            read_modification_parameters(tmp_path / "absent.txt")


class TestRegistry:
    """Test name lookups and mass matching."""

    def test_builtin_names_and_accessions(self, registry):
        """Built-in modifications resolve by name and UniMod accession."""
        assert registry.lookup("Oxidation") == pytest.approx(OXIDATION_MASS)
        assert registry.lookup("UniMod:35") == pytest.approx(OXIDATION_MASS)
        assert registry.lookup("phospho") == pytest.approx(PHOSPHO_MASS)

    def test_case_sensitive_lookup(self):
        """Case-sensitive registries do not fold case."""
        registry = ModificationMassRegistry(case_sensitive=True)

        assert "Oxidation" in registry
        assert "oxidation" not in registry

    def test_unresolved_returns_zero(self, registry):
        """Unknown names resolve to the zero sentinel."""
        assert registry.lookup("NotAMod") == UNRESOLVED_MASS
        assert registry.unresolved_names == ["notamod"]

    def test_unresolved_reported_once(self):
        """Repeated failures for one name are reported once."""
        diagnostics = RunDiagnostics()
        registry = ModificationMassRegistry(diagnostics=diagnostics)

        for _ in range(1000):
            registry.lookup("NotAMod")
        registry.lookup("OtherMod")

        assert len(diagnostics.messages) == 2
        assert diagnostics.counts[ErrorCode.RESOLUTION_WARNING] == 2

    def test_explicit_definition_wins(self):
        """Parameter-file definitions take precedence over built-ins."""
        custom = ModificationDefinition("Oxidation", 15.995, "MW")
        registry = ModificationMassRegistry([custom])

        assert registry.find("Oxidation").residues == "MW"

    def test_conflicting_masses(self):
        """The same name with masses more than 0.01 Da apart is rejected."""
        with pytest.raises(ValueError):
            ModificationMassRegistry([
                ModificationDefinition("Label", 8.014199),
                ModificationDefinition("Label", 10.008269),
            ])

    def test_find_by_mass_prefers_residue(self):
        """A definition targeting the residue beats a closer one."""
        registry = ModificationMassRegistry(
            [
                ModificationDefinition("Citrullination", 0.984016, "R"),
                ModificationDefinition("Deamidation", 0.984100, "NQ"),
            ],
            include_builtin=False,
        )

        assert registry.find_by_mass(0.984016, "N").name == "Deamidation"
        assert registry.find_by_mass(0.984016, "K").name == "Citrullination"
        assert registry.find_by_mass(1.5, "N") is None

    def test_static_definitions(self):
        """Only fixed definitions are static."""
        definitions = [
            ModificationDefinition("Carbamidomethyl", 57.021464, "C", ModificationKind.STATIC),
            ModificationDefinition("Oxidation", 15.994915, "M"),
        ]

        registry = ModificationMassRegistry(definitions, include_builtin=False)

        assert [d.name for d in registry.static_definitions] == ["Carbamidomethyl"]
