# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides sample INI, idXML, mzML, FASTA and quantification documents written
into temp directories. No external tools are needed here; the fake TOPP tools
live in tests/integration/conftest.py.
"""

from __future__ import annotations

import base64
import struct
import zlib
from pathlib import Path

import pytest

from toppbridge.core.models import IdentificationRecord, Peak, SpectrumDescriptor
from toppbridge.logging.context import clear_context


# === SAMPLE DOCUMENTS ===

SAMPLE_INI = b"""<?xml version="1.0" encoding="ISO-8859-1"?>
<PARAMETERS version="1.7.0" xsi:noNamespaceSchemaLocation="https://raw.githubusercontent.com/OpenMS/OpenMS/develop/share/OpenMS/SCHEMAS/Param_1_7_0.xsd" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
  <NODE name="OpenNuXL" description="Annotate RNA/DNA-peptide cross-links in MS/MS spectra.">
    <ITEM name="version" value="3.0.0" type="string" description="Version of the tool that generated this parameters file." required="false" advanced="true" />
    <NODE name="1" description="Instance &apos;1&apos; section for &apos;OpenNuXL&apos;">
      <ITEM name="in" value="" type="input-file" description="input file " required="true" advanced="false" supported_formats="*.mzML" />
      <ITEM name="out" value="" type="output-file" description="output file " required="true" advanced="false" supported_formats="*.idXML" />
      <ITEM name="threads" value="1" type="int" description="Sets the number of threads allowed to be used by the TOPP tool" required="false" advanced="false" />
      <!-- search settings -->
      <NODE name="precursor" description="Precursor (Parent Ion) Options">
        <ITEM name="mass_tolerance" value="6.0" type="double" description="Width of precursor mass tolerance window" required="false" advanced="false" />
        <ITEM name="mass_tolerance_unit" value="ppm" type="string" description="Unit of precursor mass tolerance." required="false" advanced="false" restrictions="ppm,Da" />
      </NODE>
      <NODE name="fragment" description="Fragments (Product Ion) Options">
        <ITEM name="mass_tolerance" value="20.0" type="double" description="Fragment mass tolerance" required="false" advanced="false" />
      </NODE>
      <NODE name="modifications" description="Modifications Options">
        <ITEMLIST name="fixed" type="string" description="Fixed modifications" required="false" advanced="false">
        </ITEMLIST>
        <ITEMLIST name="variable" type="string" description="Variable modifications" required="false" advanced="false">
          <LISTITEM value="Oxidation (M)"/>
        </ITEMLIST>
      </NODE>
      <NODE name="RNPxl" description="RNPxl Options">
        <ITEMLIST name="mapping" type="string" description="mapping" required="false" advanced="false">
          <LISTITEM value="A-&gt;A"/>
        </ITEMLIST>
      </NODE>
    </NODE>
  </NODE>
</PARAMETERS>
"""

SAMPLE_IDXML = """<?xml version="1.0" encoding="UTF-8"?>
<IdXML version="1.5" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
  <SearchParameters id="SP_0" db="nuxl_db.fasta" charges="2,3,4,5" mass_type="monoisotopic" enzyme="trypsin" />
  <IdentificationRun date="2024-01-01T00:00:00" search_engine="OpenNuXL" search_engine_version="3.0.0" search_parameters_ref="SP_0">
    <ProteinIdentification score_type="" higher_score_better="true">
      <ProteinHit id="PH_0" accession="ACC1" score="0" sequence="" />
      <ProteinHit id="PH_1" accession="P2" score="0" sequence="" />
    </ProteinIdentification>
    <PeptideIdentification score_type="NuXL:score" higher_score_better="true" MZ="500.12341" RT="600">
      <PeptideHit score="0.87" sequence="PEPTIDEK" charge="2" protein_refs="PH_0">
        <UserParam type="string" name="NuXL:NA" value="U-H2O"/>
        <UserParam type="string" name="NuXL:NT" value="U"/>
        <UserParam type="float" name="NuXL:best_localization_score" value="0.75"/>
        <UserParam type="string" name="NuXL:best_localization" value="pEPTIDEK"/>
        <UserParam type="string" name="NuXL:localization_scores" value="0.75,0,0"/>
        <UserParam type="float" name="NuXL:peptide_mass_z0" value="927.45"/>
        <UserParam type="float" name="NuXL:NA_MASS_z0" value="306.02"/>
        <UserParam type="float" name="NuXL:xl_mass_z0" value="1233.47"/>
        <UserParam type="float" name="NuXL:Da difference" value="0.001"/>
        <UserParam type="float" name="precursor_mz_error_ppm" value="1.5"/>
        <UserParam type="float" name="NuXL:z1 mass" value="1234.48"/>
        <UserParam type="float" name="NuXL:z2 mass" value="617.74"/>
        <UserParam type="float" name="NuXL:z3 mass" value="not-a-number"/>
        <UserParam type="float" name="U_113.03509" value="12.5"/>
        <UserParam type="string" name="fragment_annotation" value="(200.1,100.0,&quot;y2&quot;)|(300.2,50.0,&quot;b3+U&quot;)"/>
      </PeptideHit>
    </PeptideIdentification>
    <PeptideIdentification score_type="NuXL:score" higher_score_better="true" MZ="650.5" RT="1200">
      <UserParam type="string" name="spectrum_reference" value="scan=2"/>
      <PeptideHit score="0.5" sequence="SAMPLER" charge="3" protein_refs="PH_0 PH_1">
        <userParam type="string" name="NuXL:NA" value="U"/>
      </PeptideHit>
    </PeptideIdentification>
  </IdentificationRun>
</IdXML>
"""

SAMPLE_FASTA = """>ACC1 First protein description
PEPTIDEKSAMPLER
>P2 Second protein
SAMPLERK
>ACC1 duplicate entry
MMMM
"""

SAMPLE_PEPTIDE_TABLE = """# Files/samples associated with abundance values below: 1: 'UV.mzML', 2: 'Control.mzML'
"peptide"\t"protein"\t"n_proteins"\t"charge"\t"abundance_1"\t"abundance_2"
"PEPTIDEK"\t"ACC1"\t1\t2\t1000.5\t0
"SAMPLER"\t"ACC1/P2"\t2\t3\t\t250
"""

SAMPLE_PROTEIN_TABLE = """# Files/samples associated with abundance values below: 1: 'UV.mzML', 2: 'Control.mzML'
"protein"\t"n_proteins"\t"protein_score"\t"n_peptides"\t"abundance_1"\t"abundance_2"
"ACC1"\t1\t0.99\t2\t1500\t300
"""


def encode_array(values: list[float], compress: bool = True) -> str:
    """Base64 text of a little-endian float64 array."""
    raw = struct.pack(f"<{len(values)}d", *values)
    if compress:
        raw = zlib.compress(raw)
    return base64.b64encode(raw).decode("ascii")


def _spectrum_xml(index: int, scan: int, level: int, rt_seconds: float, mz: float, charge: int) -> str:
    mz_array = encode_array([200.1, 300.2, 400.3])
    intensity_array = encode_array([100.0, 50.0, 10.0])
    precursor = ""
    if level == 2:
        precursor = f"""
        <precursorList count="1">
          <precursor>
            <selectedIonList count="1">
              <selectedIon>
                <cvParam cvRef="MS" accession="MS:1000744" name="selected ion m/z" value="{mz}"/>
                <cvParam cvRef="MS" accession="MS:1000041" name="charge state" value="{charge}"/>
              </selectedIon>
            </selectedIonList>
          </precursor>
        </precursorList>"""
    return f"""
      <spectrum index="{index}" id="controllerType=0 controllerNumber=1 scan={scan}" defaultArrayLength="3">
        <cvParam cvRef="MS" accession="MS:1000511" name="ms level" value="{level}"/>
        <cvParam cvRef="MS" accession="MS:1000498" name="full scan" value=""/>
        <scanList count="1">
          <scan>
            <cvParam cvRef="MS" accession="MS:1000016" name="scan start time" value="{rt_seconds}" unitCvRef="UO" unitAccession="UO:0000010" unitName="second"/>
          </scan>
        </scanList>{precursor}
        <binaryDataArrayList count="2">
          <binaryDataArray encodedLength="0">
            <cvParam cvRef="MS" accession="MS:1000523" name="64-bit float" value=""/>
            <cvParam cvRef="MS" accession="MS:1000574" name="zlib compression" value=""/>
            <cvParam cvRef="MS" accession="MS:1000514" name="m/z array" value=""/>
            <binary>{mz_array}</binary>
          </binaryDataArray>
          <binaryDataArray encodedLength="0">
            <cvParam cvRef="MS" accession="MS:1000523" name="64-bit float" value=""/>
            <cvParam cvRef="MS" accession="MS:1000574" name="zlib compression" value=""/>
            <cvParam cvRef="MS" accession="MS:1000515" name="intensity array" value=""/>
            <binary>{intensity_array}</binary>
          </binaryDataArray>
        </binaryDataArrayList>
      </spectrum>"""


def build_mzml() -> str:
    """One MS1 and two MS2 spectra; the MS2 spectra match SAMPLE_IDXML."""
    spectra = "".join([
        _spectrum_xml(0, 1, 1, 599.0, 0.0, 0),
        _spectrum_xml(1, 2, 2, 600.0, 500.1234, 2),
        _spectrum_xml(2, 3, 2, 1200.0, 650.5, 3),
    ])
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<mzML xmlns="http://psi.hupo.org/ms/mzml" version="1.1.0">
  <run id="UV">
    <spectrumList count="3">{spectra}
    </spectrumList>
  </run>
</mzML>
"""


# === FIXTURES: Files ===


@pytest.fixture
def ini_file(tmp_path: Path) -> Path:
    path = tmp_path / "OpenNuXL.ini"
    path.write_bytes(SAMPLE_INI)
    return path


@pytest.fixture
def idxml_file(tmp_path: Path) -> Path:
    path = tmp_path / "results.idXML"
    path.write_text(SAMPLE_IDXML, encoding="utf-8")
    return path


@pytest.fixture
def mzml_file(tmp_path: Path) -> Path:
    path = tmp_path / "input" / "treatment.mzML"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(build_mzml(), encoding="utf-8")
    return path


@pytest.fixture
def control_mzml_file(tmp_path: Path) -> Path:
    path = tmp_path / "input" / "control.mzML"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(build_mzml(), encoding="utf-8")
    return path


@pytest.fixture
def fasta_file(tmp_path: Path) -> Path:
    path = tmp_path / "input" / "db.fasta"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(SAMPLE_FASTA, encoding="utf-8")
    return path


# === FIXTURES: Models ===


@pytest.fixture
def sample_record() -> IdentificationRecord:
    return IdentificationRecord(
        workflow_id=1,
        id=1,
        retention_time=10.0,
        mass_over_charge=500.12341,
        sequence="PEPTIDEK",
        charge=2,
        score=0.87,
        proteins="ACC1",
        fragment_annotation='(200.1,100.0,"y2")',
    )


@pytest.fixture
def sample_spectrum() -> SpectrumDescriptor:
    return SpectrumDescriptor(
        workflow_id=1, spectrum_id=2, retention_time=10.0, mass_over_charge=500.1234, charge=2
    )


@pytest.fixture
def sample_peaks() -> list[Peak]:
    return [Peak(mz=200.1, intensity=100.0), Peak(mz=300.2, intensity=50.0)]


@pytest.fixture(autouse=True)
def _reset_log_context():
    clear_context()
    yield
    clear_context()


# === FIXTURES: Raw document text ===


@pytest.fixture
def sample_ini_bytes() -> bytes:
    return SAMPLE_INI


@pytest.fixture
def sample_idxml_text() -> str:
    return SAMPLE_IDXML


@pytest.fixture
def sample_tables() -> dict[str, str]:
    """Quantification exports keyed by the ProteinQuantifier output item name."""
    return {"peptide_out": SAMPLE_PEPTIDE_TABLE, "out": SAMPLE_PROTEIN_TABLE}
