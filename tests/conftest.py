"""Pytest configuration for AlphaPeptNorm tests.

Fixtures write small engine outputs, scan-stats tables, parameter files and
FASTA databases to ``tmp_path`` so that every test runs on its own files.
"""

import pytest

from alphapeptnorm.diagnostics import RunDiagnostics
from alphapeptnorm.registry import ModificationMassRegistry


DIANN_HEADER = [
    "File.Name", "Run", "Protein.Ids", "Protein.Names", "Genes",
    "Modified.Sequence", "Stripped.Sequence", "Precursor.Id", "Precursor.Charge",
    "Precursor.Mz", "Q.Value", "PEP", "Global.Q.Value", "Protein.Q.Value",
    "Precursor.Quantity", "RT", "RT.Start", "RT.Stop", "CScore",
]


def diann_row(modified, stripped, charge, q_value, cscore, rt, rt_start, rt_stop, protein="P1"):
    """One DIA-NN report row in ``DIANN_HEADER`` order."""
    return [
        r"D:\data\RunA.raw", "RunA", protein, "PROT1_HUMAN", "GENE1",
        modified, stripped, f"{modified}{charge}", str(charge),
        "", str(q_value), "0.001", "0.001", "0.001",
        "100000", str(rt), str(rt_start), str(rt_stop), str(cscore),
    ]


DIANN_ROWS = [
    diann_row("ELVISK", "ELVISK", 2, 0.01, 0.9, 2.4, 2.3, 2.5),
    diann_row("AAALEAM(UniMod:35)K", "AAALEAMK", 2, 0.05, 0.8, 2.6, 2.5, 2.7),
    diann_row("LGEHNIDVLEGNEQFINAAK", "LGEHNIDVLEGNEQFINAAK", 3, 0.5, 0.1, 1.2, 1.1, 1.3),
]


def write_tsv(path, header, rows):
    lines = ["\t".join(header)] + ["\t".join(row) for row in rows]
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def registry():
    """Registry with the built-in modifications only."""
    return ModificationMassRegistry()


@pytest.fixture
def diagnostics():
    return RunDiagnostics()


@pytest.fixture
def diann_report(tmp_path):
    """DIA-NN report with two passing rows, one failing row and one short row."""
    rows = DIANN_ROWS + [["RunA", "ELVISK", "2"]]
    return write_tsv(tmp_path / "report.tsv", DIANN_HEADER, rows)


@pytest.fixture
def scan_stats_file(tmp_path):
    """Scan stats for dataset RunA: MS2 scans 100/200/300 at 1/2/3 min."""
    path = tmp_path / "RunA_ScanStats.txt"
    write_tsv(
        path,
        ["Dataset", "ScanNumber", "ScanTime", "ScanType"],
        [
            ["1", "100", "1.0", "2"],
            ["1", "150", "1.5", "1"],
            ["1", "200", "2.0", "2"],
            ["1", "300", "3.0", "2"],
        ],
    )
    return path


@pytest.fixture
def fasta_file(tmp_path):
    """Two proteins; ELVISK occurs in both, AAALEAMK only in P1."""
    path = tmp_path / "proteins.fasta"
    path.write_text(
        ">sp|P1|PROT1_HUMAN Protein one\n"
        "MRELVISKAAALEA\n"
        "MKPLR\n"
        ">sp|P2|PROT2_HUMAN Protein two\n"
        "GGELVISKGG\n"
    )
    return path


TOPPIC_HEADER = [
    "Data file name", "Prsm ID", "Spectrum ID", "Scan(s)", "Retention time",
    "Charge", "Precursor mass", "Protein accession", "Proteoform",
    "#matched peaks", "#matched fragment ions", "P-value", "E-value",
    "Q-value (spectral FDR)",
]


@pytest.fixture
def toppic_file(tmp_path):
    """Two PrSMs of scan 1234 and one failing PrSM of scan 1300."""
    rows = [
        ["Sample1.mzML", "0", "10", "1234", "300.5", "3", "1441.5796", "P1",
         "K.MS(ST)[Phospho]PEPTIDER.A", "20", "18", "1e-10", "1e-08", "0"],
        ["Sample1.mzML", "1", "10", "1234", "300.5", "3", "1361.6133", "P2",
         "K.MSSTPEPTIDER.A", "5", "4", "0.95", "2.5", "0.2"],
        ["Sample1.mzML", "2", "11", "1300", "310.0", "2", "1361.6133", "P3",
         "K.MSSTPEPTIDER.A", "2", "2", "0.96", "3.0", "0.5"],
    ]
    return write_tsv(tmp_path / "Sample1_TopPIC_PrSMs.txt", TOPPIC_HEADER, rows)


MSFRAGGER_HEADER = [
    "Spectrum", "Spectrum File", "Peptide", "Prev AA", "Next AA", "Charge",
    "Retention", "Observed Mass", "Expectation", "Hyperscore", "Nextscore",
    "Assigned Modifications", "Protein",
]


@pytest.fixture
def msfragger_file(tmp_path):
    """One passing PSM and one PSM exactly at both thresholds."""
    rows = [
        ["Sample2.01000.01000.2", "interact-Sample2.pep.xml", "AAALEAMK", "K", "P", "2",
         "1800.0", "", "0.001", "35.0", "20.0", "7M(15.9949)", "sp|P1|PROT1_HUMAN"],
        ["Sample2.01001.01001.2", "interact-Sample2.pep.xml", "ELVISK", "R", "A", "2",
         "1805.0", "", "0.75", "20.0", "10.0", "", "sp|P1|PROT1_HUMAN"],
    ]
    return write_tsv(tmp_path / "Sample2_psm.tsv", MSFRAGGER_HEADER, rows)


@pytest.fixture
def diann_records():
    """(header, rows) of the three well-formed DIA-NN rows."""
    return list(DIANN_HEADER), [list(row) for row in DIANN_ROWS]


@pytest.fixture
def tsv_writer():
    """Write a tab-delimited file: ``tsv_writer(path, header, rows)``."""
    return write_tsv
