"""Two-pass normalization of one search engine result file.

Pass 1 reads the engine's native rows, decodes modifications, reconstructs
masses, classifies cleavage (with an assumed tryptic context when the engine
reports no flanking residues), resolves scan numbers from elution times when
needed, then ranks, filters and sorts the records and writes the synopsis.

Between the passes an optional protein mapper supplies the real flanking
residues. Pass 2 re-reads the synopsis, re-classifies cleavage, describes
the modifications and writes the final file plus a modification summary.

Every run builds its own diagnostics, registry, decoder, mass engine and scan
resolver; nothing is shared between files.

Example:
    >>> from alphapeptnorm import NormalizationPipeline, NormalizationConfig
    >>> pipeline = NormalizationPipeline("diann", NormalizationConfig(fasta_file="db.fasta"))
    >>> result = pipeline.run_file("report.tsv")
    >>> result.success, result.final_path
"""

import csv
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .cleavage import CleavageInfo, classify, classify_assumed_tryptic
from .columns import ColumnMapping
from .config import NormalizationConfig
from .diagnostics import RunDiagnostics
from .dialects import SearchEngineDialect, get_dialect_class
from .exceptions import (
    ErrorCode,
    NormalizationError,
    RecordError,
    ResultFileIOError,
    SchemaError,
)
from .filtering import filter_rank_sort
from .mass import MassReconstructionEngine
from .modifications import (
    ModificationAnnotationDecoder,
    ModificationOccurrence,
    describe_modifications,
    format_modification_mass,
    parse_modification_list,
    with_protein_termini,
)
from .protein_mapping import FastaProteinMapper, ProteinMapper, ProteinMatch
from .readers import SHADOW_COPY_SUFFIX, is_columnar, read_batches
from .records import FINAL_COLUMNS, SYNOPSIS_COLUMNS, CanonicalRecord, RawRecord
from .registry import (
    ModificationDefinition,
    ModificationMassRegistry,
    read_modification_parameters,
)
from .scan_index import ElutionTimeScanResolver

logger = logging.getLogger(__name__)

SYNOPSIS_SUFFIX = "_syn.txt"
FINAL_SUFFIX = "_syn_final.txt"
MOD_SUMMARY_SUFFIX = "_syn_ModSummary.txt"

MOD_SUMMARY_COLUMNS = (
    "Modification_Symbol",
    "Modification_Mass",
    "Target_Residues",
    "Modification_Type",
    "Mass_Correction_Tag",
    "Occurrence_Count",
)


@dataclass
class PipelineResult:
    """Outcome of one file; ``error_code`` is ``ErrorCode.NONE`` on success."""

    input_path: Path
    success: bool = False
    error_code: str = ErrorCode.NONE
    message: str = ""
    synopsis_path: Optional[Path] = None
    final_path: Optional[Path] = None
    mod_summary_path: Optional[Path] = None
    shadow_copy_path: Optional[Path] = None
    rows_read: int = 0
    records_parsed: int = 0
    records_written: int = 0
    diagnostics: Dict[str, int] = field(default_factory=dict)
    messages: List[str] = field(default_factory=list)


@dataclass
class _RunState:
    """Collaborators owned by one run."""

    dialect: SearchEngineDialect
    diagnostics: RunDiagnostics
    registry: ModificationMassRegistry
    decoder: ModificationAnnotationDecoder
    mass_engine: MassReconstructionEngine
    scan_resolver: ElutionTimeScanResolver
    scan_lookups_attempted: set = field(default_factory=set)


@dataclass
class _SummaryEntry:
    symbol: str
    mass: float
    mod_type: str
    residues: set = field(default_factory=set)
    count: int = 0


class _AbortRequested(Exception):
    pass


class NormalizationPipeline:
    """Normalize result files of one search engine.

    Parameters
    ----------
    dialect : str or SearchEngineDialect
        Engine name (``diann``, ``toppic``, ``msalign``, ``msfragger``) or a
        dialect instance; a fresh instance of its class is used per run
    config : NormalizationConfig, optional
        Thresholds, tolerances and side inputs
    protein_mapper : ProteinMapper, optional
        Supplies flanking residues between the passes; built from
        ``config.fasta_file`` when not given
    """

    def __init__(
        self,
        dialect: Union[str, SearchEngineDialect],
        config: Optional[NormalizationConfig] = None,
        protein_mapper: Optional[ProteinMapper] = None,
    ):
        self.config = config if config is not None else NormalizationConfig()
        self.config.validate()

        if isinstance(dialect, SearchEngineDialect):
            self.dialect_class = type(dialect)
        else:
            self.dialect_class = get_dialect_class(dialect)

        self.protein_mapper = protein_mapper
        self._definitions: Optional[List[ModificationDefinition]] = None
        self._abort_requested = False

    def __repr__(self):
        return f"NormalizationPipeline(dialect={self.dialect_class.name!r})"

    # -------------------------------------------------------------------------
    # Abort
    # -------------------------------------------------------------------------

    def request_abort(self) -> None:
        """Ask the running loops to stop at their next iteration boundary."""
        self._abort_requested = True

    def reset_abort(self) -> None:
        self._abort_requested = False

    @property
    def abort_requested(self) -> bool:
        return self._abort_requested

    def _check_abort(self) -> None:
        if self._abort_requested:
            raise _AbortRequested()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run_files(self, input_paths: Iterable[Union[str, Path]]) -> List[PipelineResult]:
        """Run each file in turn; a failed file does not stop the others."""
        results = []
        for input_path in input_paths:
            if self._abort_requested:
                logger.info("Abort requested; skipping remaining files")
                break
            results.append(self.run_file(input_path))

        n_ok = sum(result.success for result in results)
        logger.info(f"Normalized {n_ok}/{len(results)} files")
        return results

    def run_file(self, input_path: Union[str, Path]) -> PipelineResult:
        """Normalize one result file.

        Schema and I/O problems are reported in the returned result, not
        raised. Malformed rows are skipped and listed in the diagnostics.
        """
        input_path = Path(input_path)
        result = PipelineResult(input_path=input_path)
        start_time = time.time()

        logger.info(f"Normalizing {input_path.name} ({self.dialect_class.name})")

        state = None
        try:
            state = self._new_run_state()
            self._run(input_path, state, result)
            result.success = True
        except _AbortRequested:
            result.error_code = ErrorCode.ABORTED
            result.message = f"Processing of {input_path.name} was aborted"
            logger.warning(result.message)
        except (SchemaError, ResultFileIOError) as e:
            self._fail(result, e)
        except OSError as e:
            self._fail(result, ResultFileIOError(f"I/O failure while processing {input_path}", str(e)))

        if state is not None:
            state.scan_resolver.report()
            state.diagnostics.log_summary(input_path.name)
            result.diagnostics = state.diagnostics.summary()
            result.messages = list(state.diagnostics.messages)

        if result.success:
            logger.info(
                f"Finished {input_path.name}: {result.records_written:,} records "
                f"in {time.time() - start_time:.1f}s"
            )
        return result

    @staticmethod
    def _fail(result: PipelineResult, error: NormalizationError) -> None:
        result.error_code = error.error_code
        result.message = error.msg if not error.detail_msg else f"{error.msg}: {error.detail_msg}"
        logger.error(str(error))

    # -------------------------------------------------------------------------
    # Run setup
    # -------------------------------------------------------------------------

    def _load_definitions(self) -> List[ModificationDefinition]:
        if self._definitions is None:
            if self.config.modification_parameter_file is not None:
                self._definitions = read_modification_parameters(
                    self.config.modification_parameter_file
                )
            else:
                self._definitions = []
        return self._definitions

    def _load_protein_mapper(self) -> Optional[ProteinMapper]:
        if self.protein_mapper is None and self.config.fasta_file is not None:
            self.protein_mapper = FastaProteinMapper.from_fasta(self.config.fasta_file)
        return self.protein_mapper

    def _new_run_state(self) -> _RunState:
        config = self.config
        diagnostics = RunDiagnostics(config.max_error_messages, config.max_consistency_warnings)

        try:
            definitions = self._load_definitions()
        except ValueError as e:
            raise SchemaError("Invalid modification parameter file", str(e)) from e

        registry = ModificationMassRegistry(
            definitions,
            case_sensitive=config.case_sensitive_mod_names,
            diagnostics=diagnostics,
        )
        dialect = self.dialect_class(config)

        return _RunState(
            dialect=dialect,
            diagnostics=diagnostics,
            registry=registry,
            decoder=dialect.create_decoder(registry),
            mass_engine=MassReconstructionEngine(config.mass_tolerance_da, diagnostics),
            scan_resolver=ElutionTimeScanResolver(diagnostics),
        )

    def _output_directory(self, input_path: Path) -> Path:
        if self.config.output_directory is not None:
            return Path(self.config.output_directory)
        return input_path.parent

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def _run(self, input_path: Path, state: _RunState, result: PipelineResult) -> None:
        output_directory = self._output_directory(input_path)
        output_directory.mkdir(parents=True, exist_ok=True)

        base = state.dialect.synopsis_name(input_path)
        result.synopsis_path = output_directory / f"{base}{SYNOPSIS_SUFFIX}"
        result.final_path = output_directory / f"{base}{FINAL_SUFFIX}"
        result.mod_summary_path = output_directory / f"{base}{MOD_SUMMARY_SUFFIX}"
        if is_columnar(input_path) and self.config.write_shadow_copy:
            result.shadow_copy_path = output_directory / f"{input_path.stem}{SHADOW_COPY_SUFFIX}"

        # Pass 1
        records = self._parse_records(input_path, state, result)
        self._check_abort()

        retained = filter_rank_sort(records, state.dialect, self.config.score_epsilon)
        for result_id, record in enumerate(retained, start=1):
            record.result_id = result_id
        self._write_synopsis(retained, result.synopsis_path, state.dialect)
        self._check_abort()

        # Between passes
        mapper = None
        if not state.dialect.has_flanking_residues:
            mapper = self._load_protein_mapper()
            if mapper is None:
                logger.info("No protein mapper configured; keeping assumed tryptic context")

        # Pass 2
        result.records_written = self._write_final(
            result.synopsis_path, result.final_path, result.mod_summary_path, state, mapper
        )

    # -------------------------------------------------------------------------
    # Pass 1
    # -------------------------------------------------------------------------

    def _parse_records(
        self,
        input_path: Path,
        state: _RunState,
        result: PipelineResult,
    ) -> List[CanonicalRecord]:
        records: List[CanonicalRecord] = []
        mapping: Optional[ColumnMapping] = None
        mapped_columns: Optional[List[str]] = None
        default_dataset = input_path.stem

        batches = read_batches(
            input_path,
            shadow_copy_path=result.shadow_copy_path,
            should_abort=lambda: self._abort_requested,
        )
        try:
            for batch in batches:
                self._check_abort()
                if batch.column_names != mapped_columns:
                    mapping = state.dialect.resolve_columns(batch.column_names)
                    mapped_columns = batch.column_names
                    logger.debug(f"Column mapping: {mapping}")

                for line_number, row in batch.rows:
                    self._check_abort()
                    result.rows_read += 1
                    try:
                        record = self._build_record(row, mapping, line_number, default_dataset, state)
                    except RecordError as e:
                        state.diagnostics.record_exception(e, f"line {line_number}")
                        continue
                    records.append(record)
        finally:
            # Closes the input file and the shadow copy
            batches.close()

        # Row loops stop silently on abort; surface it here
        self._check_abort()

        result.records_parsed = len(records)
        logger.info(
            f"Parsed {len(records):,} of {result.rows_read:,} rows from {input_path.name}"
        )
        return records

    def _resolve_scan(self, raw: RawRecord, state: _RunState) -> int:
        dataset = raw.dataset
        directory = self.config.scan_stats_directory
        if directory is not None and dataset not in state.scan_lookups_attempted:
            state.scan_lookups_attempted.add(dataset)
            state.scan_resolver.load_directory(directory, [dataset])
        return state.scan_resolver.resolve(dataset, raw.elution_time, raw.rt_start, raw.rt_stop)

    def _build_record(
        self,
        row: Sequence[str],
        mapping: ColumnMapping,
        line_number: int,
        default_dataset: str,
        state: _RunState,
    ) -> CanonicalRecord:
        """Fold one row into a CanonicalRecord.

        Raises
        ------
        RecordError
            If the row is malformed or its mass cannot be reconstructed
        """
        dialect = state.dialect
        raw = dialect.extract_record(row, mapping, line_number, default_dataset)

        if dialect.needs_scan_resolution(raw):
            raw.scan = self._resolve_scan(raw, state)
        elif raw.scan is None:
            raise RecordError("Scan number is missing", f"line {line_number}")

        decoded = dialect.decode_modifications(raw, state.decoder)
        try:
            masses = state.mass_engine.reconstruct(
                decoded.clean_sequence,
                decoded.modifications,
                raw.charge,
                raw.precursor_mass,
                context=f"line {line_number}",
            )
        except ValueError as e:
            raise RecordError("Cannot reconstruct mass", str(e)) from e

        cleavage = self._classify(raw.prefix, decoded.clean_sequence, raw.suffix)

        return CanonicalRecord(
            dataset=raw.dataset,
            scan=raw.scan,
            charge=raw.charge,
            peptide=dialect.annotated_peptide(raw, decoded),
            clean_sequence=decoded.clean_sequence,
            modifications=decoded.modifications,
            mass=masses.mass,
            mz=masses.mz,
            mh=masses.mh,
            delta_mass=masses.delta_mass,
            delta_ppm=masses.delta_ppm,
            prefix=raw.prefix,
            suffix=raw.suffix,
            cleavage_state=cleavage.state,
            ntt=cleavage.ntt,
            missed_cleavages=cleavage.missed_cleavages,
            protein=raw.protein,
            additional_proteins=list(raw.additional_proteins),
            elution_time=raw.elution_time,
            scores=dict(raw.scores),
        )

    @staticmethod
    def _classify(prefix: str, sequence: str, suffix: str) -> CleavageInfo:
        if prefix and suffix:
            return classify(prefix, sequence, suffix)
        return classify_assumed_tryptic(sequence)

    def _write_synopsis(
        self,
        records: Sequence[CanonicalRecord],
        synopsis_path: Path,
        dialect: SearchEngineDialect,
    ) -> None:
        score_columns = dialect.score_columns
        header = list(SYNOPSIS_COLUMNS) + score_columns

        with _AtomicWriter(synopsis_path) as handle:
            writer = csv.writer(handle, delimiter="\t", lineterminator="\n")
            writer.writerow(header)
            for record in records:
                self._check_abort()
                writer.writerow(record.synopsis_row(score_columns))

        logger.info(f"Wrote {len(records):,} records to {synopsis_path.name}")

    # -------------------------------------------------------------------------
    # Pass 2
    # -------------------------------------------------------------------------

    def _read_synopsis(self, synopsis_path: Path):
        import pandas as pd

        try:
            return pd.read_csv(synopsis_path, sep='\t', dtype=str, keep_default_na=False)
        except (OSError, pd.errors.ParserError) as e:
            raise ResultFileIOError(f"Cannot read synopsis file {synopsis_path}", str(e)) from e

    @staticmethod
    def _choose_match(protein: str, matches: List[ProteinMatch]) -> ProteinMatch:
        for match in matches:
            if match.protein == protein:
                return match
        return matches[0]

    def _write_final(
        self,
        synopsis_path: Path,
        final_path: Path,
        mod_summary_path: Path,
        state: _RunState,
        mapper: Optional[ProteinMapper],
    ) -> int:
        df = self._read_synopsis(synopsis_path)
        logger.info(f"Re-read {len(df):,} records from {synopsis_path.name}")

        # Only used to strip annotations from the Peptide column
        sequence_decoder = state.dialect.create_decoder(None)
        summary: Dict[str, _SummaryEntry] = OrderedDict()
        header = list(df.columns) + list(FINAL_COLUMNS)
        n_unmapped = 0

        with _AtomicWriter(final_path) as handle:
            writer = csv.writer(handle, delimiter="\t", lineterminator="\n")
            writer.writerow(header)

            for row in df.to_dict(orient="records"):
                self._check_abort()

                clean_sequence = sequence_decoder.decode(row["Peptide"]).clean_sequence
                prefix, suffix = row["Prefix"], row["Suffix"]
                proteins = [row["Protein"]] if row["Protein"] else []
                proteins += [p for p in row["AdditionalProteins"].split(";") if p]

                if mapper is not None and not (prefix and suffix):
                    matches = mapper.map_peptide(clean_sequence)
                    if matches:
                        chosen = self._choose_match(row["Protein"], matches)
                        prefix, suffix = chosen.prefix, chosen.suffix
                        proteins = [chosen.protein] + proteins + [m.protein for m in matches]
                    else:
                        n_unmapped += 1

                proteins = list(OrderedDict.fromkeys(proteins))
                cleavage = self._classify(prefix, clean_sequence, suffix)

                modifications = parse_modification_list(row["Modifications"], clean_sequence).modifications
                modifications = with_protein_termini(modifications, prefix, suffix)
                self._add_to_summary(summary, modifications, state.registry)

                row["Prefix"] = prefix
                row["Suffix"] = suffix
                row["Protein"] = proteins[0] if proteins else ""
                row["AdditionalProteins"] = ";".join(proteins[1:])
                row["NTT"] = str(cleavage.ntt)
                row["MissedCleavages"] = str(cleavage.missed_cleavages)
                row["ProteinCount"] = str(len(proteins))
                row["ModDescription"] = describe_modifications(modifications, state.registry)

                writer.writerow([row[column] for column in header])

        if n_unmapped:
            state.diagnostics.count("unmapped_peptides", n_unmapped)
            logger.warning(f"{n_unmapped:,} peptides were not found in the protein database")

        logger.info(f"Wrote {len(df):,} records to {final_path.name}")
        self._write_mod_summary(summary, mod_summary_path)
        return len(df)

    # -------------------------------------------------------------------------
    # Modification summary
    # -------------------------------------------------------------------------

    @staticmethod
    def _add_to_summary(
        summary: Dict[str, _SummaryEntry],
        modifications: Sequence[ModificationOccurrence],
        registry: ModificationMassRegistry,
    ) -> None:
        for mod in modifications:
            definition = registry.find_by_mass(mod.mass, mod.residue)
            if definition is not None:
                key = definition.name
                mass = definition.mass
                mod_type = "Static" if definition.is_static else "Dynamic"
            else:
                key = format_modification_mass(mod.mass)
                mass = mod.mass
                mod_type = "Dynamic"

            entry = summary.get(key)
            if entry is None:
                entry = summary[key] = _SummaryEntry(key, mass, mod_type)
            entry.residues.add(mod.residue)
            entry.count += 1

    def _write_mod_summary(self, summary: Dict[str, _SummaryEntry], path: Path) -> None:
        entries = sorted(summary.values(), key=lambda entry: (entry.mass, entry.symbol))

        with _AtomicWriter(path) as handle:
            writer = csv.writer(handle, delimiter="\t", lineterminator="\n")
            writer.writerow(MOD_SUMMARY_COLUMNS)
            for symbol_index, entry in enumerate(entries, start=1):
                writer.writerow([
                    str(symbol_index),
                    f"{entry.mass:.6f}",
                    "".join(sorted(entry.residues)),
                    entry.mod_type,
                    entry.symbol,
                    str(entry.count),
                ])

        logger.info(f"Wrote {len(entries)} modifications to {path.name}")


class _AtomicWriter:
    """Write to ``<path>.tmp`` and move it into place only on a clean exit.

    The temporary file is opened on ``__enter__`` and removed on every
    failure path, so an aborted run never leaves a truncated output.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.tmp_path = self.path.with_name(self.path.name + ".tmp")
        self._handle = None

    def __enter__(self):
        try:
            self._handle = open(self.tmp_path, "w", newline="")
        except OSError as e:
            raise ResultFileIOError(f"Cannot create output file {self.path}", str(e)) from e
        return self._handle

    def __exit__(self, exc_type, exc, tb):
        self._handle.close()
        if exc_type is None:
            self.tmp_path.replace(self.path)
        else:
            self.tmp_path.unlink(missing_ok=True)
        return False
