# src/pipeline/ingestion.py — v1
"""Load the files a finished run produced into a result store.

Identification records are numbered from the store's next free id, inserted,
joined to the store's spectra by rounded RT and m/z, connected to the matched
spectra and finally updated with their correlation tokens. Quantification
tables are added when the run produced them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from toppbridge.correlation.correlator import SpectrumCorrelator
from toppbridge.pipeline.state import (
    DATABASE,
    IDENTIFICATIONS,
    PEPTIDE_TABLE,
    PROTEIN_TABLE,
    StageOutputs,
    WorkflowConfig,
)
from toppbridge.results.fasta import accession_descriptions
from toppbridge.results.idxml_parser import IdXMLParser
from toppbridge.results.mzml import read_ms2_spectra
from toppbridge.results.tabular import parse_peptide_table, parse_protein_table
from toppbridge.storage.base_result_store import (
    IDENTIFICATION_ENTITY,
    PEPTIDE_ENTITY,
    PROTEIN_ENTITY,
    BaseResultStore,
)

logger = logging.getLogger(__name__)


@dataclass
class IngestionSummary:
    records: int = 0
    correlated: int = 0
    peptides: int = 0
    proteins: int = 0


async def ensure_spectra(store: BaseResultStore, config: WorkflowConfig) -> int:
    """Load the treatment run's MS/MS spectra unless the store already has some.

    Returns:
        Number of spectra added.
    """
    if await store.list_spectra(config.workflow_id):
        return 0
    spectra = read_ms2_spectra(config.treatment.path, workflow_id=config.workflow_id)
    await store.add_spectra(spectra)
    return len(spectra)


async def ingest_identifications(
    store: BaseResultStore,
    idxml: Path,
    workflow_id: int = 0,
) -> tuple[int, int]:
    """Parse, insert and correlate one identification document.

    Returns:
        (records inserted, records correlated with a spectrum)
    """
    records = IdXMLParser().parse(idxml)
    await store.register_entity(IDENTIFICATION_ENTITY)
    first_id = await store.next_id(IDENTIFICATION_ENTITY)
    records = [
        record.model_copy(update={"workflow_id": workflow_id, "id": first_id + offset})
        for offset, record in enumerate(records)
    ]
    await store.insert_items(IDENTIFICATION_ENTITY, records)

    correlator = SpectrumCorrelator(records, result_set_guid=store.result_set_guid)
    matches = correlator.correlate(await store.list_spectra(workflow_id))
    if matches:
        await store.connect_items(
            IDENTIFICATION_ENTITY,
            [(match.record.key, match.spectrum.key) for match in matches],
        )
        await store.update_items(
            IDENTIFICATION_ENTITY,
            {match.record.key: {"correlation_token": match.token.encode()} for match in matches},
        )

    logger.info(
        "Ingested %d identifications, %d correlated with spectra",
        len(records), len(matches),
    )
    return len(records), len(matches)


async def ingest_quantification(
    store: BaseResultStore,
    outputs: StageOutputs,
    config: WorkflowConfig,
) -> tuple[int, int]:
    """Insert the peptide and protein tables when present.

    Returns:
        (peptides inserted, proteins inserted)
    """
    raw_files = [item.path for item in config.inputs]
    database = outputs.get(DATABASE)
    descriptions = accession_descriptions(database) if isinstance(database, Path) else {}

    counts = []
    for key, entity, parse in (
        (PEPTIDE_TABLE, PEPTIDE_ENTITY, parse_peptide_table),
        (PROTEIN_TABLE, PROTEIN_ENTITY, parse_protein_table),
    ):
        path = outputs.get(key)
        if not isinstance(path, Path) or not path.is_file():
            logger.debug("No %s table to ingest", entity)
            counts.append(0)
            continue
        rows = parse(path, raw_files, descriptions, workflow_id=config.workflow_id)
        await store.register_entity(entity)
        first_id = await store.next_id(entity)
        rows = [row.model_copy(update={"id": first_id + i}) for i, row in enumerate(rows)]
        await store.insert_items(entity, rows)
        counts.append(len(rows))

    return counts[0], counts[1]


async def ingest_run(
    store: BaseResultStore,
    outputs: StageOutputs,
    config: WorkflowConfig,
) -> IngestionSummary:
    """Ingest everything a successful run produced."""
    await ensure_spectra(store, config)
    idxml = outputs[IDENTIFICATIONS]
    if not isinstance(idxml, Path):
        idxml = idxml[0]
    records, correlated = await ingest_identifications(store, idxml, config.workflow_id)
    peptides, proteins = await ingest_quantification(store, outputs, config)
    return IngestionSummary(
        records=records, correlated=correlated, peptides=peptides, proteins=proteins
    )
