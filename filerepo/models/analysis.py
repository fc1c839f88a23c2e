"""Analysis classification for workflow-bearing sources.

A workflow is described by the triple ``(library_strategy, workflow_type,
specimen_class)`` as it appears in the source catalog.  :func:`classify`
maps the triple onto exactly one :class:`AnalysisCategory` using fixed
string-equality rules; anything unrecognised falls back to ``OTHER``.
Classification is pure and total: it never raises.

:class:`Analysis` derives the canonical classification fields (data
category, experimental strategy, workflow software and file format) from
the category plus, for variant calls, the file-name suffix.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class AnalysisCategory(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    """Mutually exclusive analysis categories."""

    RNA_ALIGNMENT = "RNA_ALIGNMENT"
    BWA_ALIGNMENT = "BWA_ALIGNMENT"
    SANGER_VARIANT_CALLING = "SANGER_VARIANT_CALLING"
    OTHER = "OTHER"


_RNA_ALIGNMENT_WORKFLOWS = frozenset({"star", "tophat"})

# Software names reported for each alignment workflow type.
_RNA_SOFTWARE = {"star": "STAR", "tophat": "TopHat2"}
_BWA_SOFTWARE = "BWA-MEM"
_SANGER_SOFTWARE = "Sanger variant call pipeline"

ALIGNED_READS = "aligned reads"

# Variant-call file suffix -> data category.  Checked in order.
_VCF_DATA_CATEGORIES: tuple[tuple[str, str], ...] = (
    (".somatic.snv_mnv.vcf.gz", "simple somatic mutation"),
    (".somatic.cnv.vcf.gz", "copy number somatic mutation"),
    (".somatic.sv.vcf.gz", "structural somatic mutation"),
    (".somatic.indel.vcf.gz", "simple somatic mutation"),
    (".germline.snv_mnv.vcf.gz", "simple germline variation"),
    (".germline.cnv.vcf.gz", "copy number germline variation"),
    (".germline.sv.vcf.gz", "structural germline variation"),
    (".germline.indel.vcf.gz", "simple germline variation"),
)


def classify(
    library_strategy: str | None,
    workflow_type: str | None,
    specimen_class: str | None,
) -> AnalysisCategory:
    """Return the analysis category for a workflow triple.

    ``specimen_class`` is carried for completeness; none of the current
    rules depend on it.

    Examples
    --------
    >>> classify("rna_seq", "star", "normal")
    <AnalysisCategory.RNA_ALIGNMENT: 'RNA_ALIGNMENT'>
    >>> classify("wgs", "unknown_tool", "tumour")
    <AnalysisCategory.OTHER: 'OTHER'>
    """
    if library_strategy == "rna_seq" and workflow_type in _RNA_ALIGNMENT_WORKFLOWS:
        return AnalysisCategory.RNA_ALIGNMENT
    if library_strategy == "wgs" and workflow_type == "bwa_alignment":
        return AnalysisCategory.BWA_ALIGNMENT
    if library_strategy == "wgs" and workflow_type == "sanger_variant_calling":
        return AnalysisCategory.SANGER_VARIANT_CALLING
    return AnalysisCategory.OTHER


class DataCategorization(BaseModel):
    """Canonical classification fields derived from an analysis."""

    model_config = ConfigDict(frozen=True)

    data_category: str | None = None
    experimental_strategy: str | None = None
    analysis_workflow: str | None = None
    file_format: str | None = None


class Analysis(BaseModel):
    """A classified workflow triple."""

    model_config = ConfigDict(frozen=True)

    library_strategy: str | None = None
    workflow_type: str | None = None
    specimen_class: str | None = None

    @property
    def category(self) -> AnalysisCategory:
        return classify(self.library_strategy, self.workflow_type, self.specimen_class)

    def data_categorization(self, file_name: str) -> DataCategorization:
        """Derive data category, strategy, workflow and format for *file_name*."""
        category = self.category
        if category is AnalysisCategory.RNA_ALIGNMENT:
            return DataCategorization(
                data_category=ALIGNED_READS,
                experimental_strategy="RNA-Seq",
                analysis_workflow=_RNA_SOFTWARE[self.workflow_type or ""],
                file_format="BAM",
            )
        if category is AnalysisCategory.BWA_ALIGNMENT:
            return DataCategorization(
                data_category=ALIGNED_READS,
                experimental_strategy="WGS",
                analysis_workflow=_BWA_SOFTWARE,
                file_format="BAM",
            )
        if category is AnalysisCategory.SANGER_VARIANT_CALLING:
            data_category = variant_call_data_category(file_name)
            return DataCategorization(
                data_category=data_category,
                experimental_strategy="WGS",
                analysis_workflow=_SANGER_SOFTWARE,
                file_format="VCF" if data_category else None,
            )
        return DataCategorization()


def variant_call_data_category(file_name: str) -> str | None:
    """Resolve the data category of a variant-call file from its suffix."""
    for suffix, data_category in _VCF_DATA_CATEGORIES:
        if file_name.endswith(suffix):
            return data_category
    return None
