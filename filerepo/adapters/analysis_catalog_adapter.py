"""Adapter for a workflow-bearing REST catalog (the ``pcawg`` source).

Manifest:
    Paged donor documents.  Each donor nests its workflows as
    ``library_strategy -> specimen_class -> workflow_type``, where a
    specimen class holds either one specimen object or a list of them::

        {"dcc_project_code": "BRCA-UK", "submitter_donor_id": "d1",
         "icgc_donor_id": "DO1",
         "wgs": {"tumor_specimens": [
             {"bwa_alignment": {"gnos_id": "...", "gnos_repo": ["https://..."],
                                "files": [{"file_name": "x.bam", ...}]}}]}}

    Every workflow becomes one :class:`ManifestEntry` carrying the triple
    that :func:`~filerepo.models.analysis.classify` maps to a category.

Inventory:
    The paged ``files`` query.  A response is ``{"hits": [...],
    "pagination": {"page": n, "pages": m}}``, optionally wrapped in
    ``"data"``.  Without a ``pagination`` block, paging continues until a page
    comes back short.  Hits whose ``state`` is ``redacted`` or ``deleted`` turn
    the matching record into a tombstone.
"""

from __future__ import annotations

import uuid
from typing import Any, AsyncIterator
from urllib.parse import urlparse

import structlog

from filerepo.config.sources import AnalysisCatalogSourceConfig
from filerepo.interfaces.catalog_provider import ICatalogProvider
from filerepo.interfaces.source_adapter import SourceAdapter, parse_timestamp
from filerepo.models.analysis import Analysis
from filerepo.models.files import (
    AccessProtocol,
    CanonicalFile,
    Checksum,
    DonorRef,
    ObjectLocation,
    resolve_file_format,
)
from filerepo.models.manifest import InventoryObject, ManifestEntry, RawFileDescriptor
from filerepo.models.repository import find_server
from filerepo.utils.errors import SourceUnavailableError

logger = structlog.get_logger(logger_name=__name__)


def resolve_object_id(bundle_id: str, file_name: str) -> str:
    """Derive a stable object id for a file that the catalog lists without one."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{bundle_id}/{file_name}"))


class AnalysisCatalogAdapter(SourceAdapter):
    """Joins catalog workflows to the catalog's file listing.

    Parameters
    ----------
    config:
        The source's validated configuration.
    catalog:
        JSON catalog client rooted at ``config.base_url``.
    """

    def __init__(
        self,
        config: AnalysisCatalogSourceConfig,
        catalog: ICatalogProvider,
    ) -> None:
        super().__init__(config.source)
        self._config = config
        self._catalog = catalog

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    async def read_manifest(self) -> AsyncIterator[ManifestEntry]:
        async for donor in self._pages(self._config.donors_endpoint):
            for entry in self._donor_workflows(donor):
                yield entry

    async def read_inventory(self) -> AsyncIterator[InventoryObject]:
        async for hit in self._pages(self._config.files_endpoint):
            obj = self._parse_hit(hit)
            if obj is not None:
                yield obj

    async def _pages(self, endpoint: str) -> AsyncIterator[dict[str, Any]]:
        """Yield every hit of a paged endpoint, requesting one page at a time."""
        size = self._config.page_size
        page = 0
        while True:
            payload = await self._catalog.fetch_json(
                endpoint, {"from": page * size, "size": size}
            )
            body = payload.get("data", payload)
            hits = body.get("hits")
            if not isinstance(hits, list):
                raise SourceUnavailableError(
                    message=f"Catalog page of {endpoint} has no hits list",
                    source_name=self.source.value,
                )
            pagination = body.get("pagination") or {}
            logger.debug(
                "catalog_page_read",
                source=self.source.value,
                endpoint=endpoint,
                page=pagination.get("page"),
                pages=pagination.get("pages"),
                hits=len(hits),
            )
            for hit in hits:
                if isinstance(hit, dict):
                    yield hit

            page += 1
            if not hits:
                return
            if pagination.get("pages") is None:
                # No page count: a short page is the last one.
                if len(hits) < size:
                    return
            elif int(pagination.get("page") or page) >= int(pagination["pages"]):
                return

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def _donor_workflows(self, donor: dict[str, Any]) -> list[ManifestEntry]:
        project_code = donor.get("dcc_project_code")
        submitted_donor_id = donor.get("submitter_donor_id")
        donor_id = donor.get("icgc_donor_id")
        entries: list[ManifestEntry] = []

        for library_strategy in self._config.library_strategies:
            specimen_classes = donor.get(library_strategy)
            if not isinstance(specimen_classes, dict):
                continue
            for specimen_class, specimens in specimen_classes.items():
                for specimen in specimens if isinstance(specimens, list) else [specimens]:
                    if not isinstance(specimen, dict):
                        continue
                    for workflow_type, workflow in specimen.items():
                        if not isinstance(workflow, dict) or "files" not in workflow:
                            continue
                        entry = self._parse_workflow(
                            workflow,
                            library_strategy=library_strategy,
                            specimen_class=specimen_class,
                            workflow_type=workflow_type,
                            project_code=project_code,
                            submitted_donor_id=submitted_donor_id,
                            donor_id=donor_id,
                        )
                        if entry is not None:
                            entries.append(entry)
        return entries

    def _parse_workflow(
        self,
        workflow: dict[str, Any],
        *,
        library_strategy: str,
        specimen_class: str,
        workflow_type: str,
        project_code: str | None,
        submitted_donor_id: str | None,
        donor_id: str | None = None,
    ) -> ManifestEntry | None:
        gnos_id = workflow.get("gnos_id")
        if not gnos_id:
            logger.warning(
                "catalog_workflow_without_id",
                source=self.source.value,
                workflow_type=workflow_type,
                donor=submitted_donor_id,
            )
            return None

        descriptors: list[RawFileDescriptor] = []
        for file in workflow.get("files") or []:
            # Alignment workflows report the BAM under bam_* keys.
            name = file.get("bam_file_name") or file.get("file_name")
            if not name:
                continue
            md5 = file.get("bam_file_md5sum") or file.get("file_md5sum")
            size = max(int(file.get("file_size") or 0), int(file.get("bam_file_size") or 0))
            descriptors.append(
                RawFileDescriptor(
                    object_id=file.get("object_id") or resolve_object_id(gnos_id, name),
                    name=name,
                    size=size or None,
                    checksum=Checksum(digest=md5) if md5 else None,
                )
            )

        repos = workflow.get("gnos_repo") or []
        return ManifestEntry(
            unit_id=gnos_id,
            files=descriptors,
            project_code=project_code,
            donor_refs=[
                DonorRef(
                    project_code=project_code,
                    donor_id=donor_id,
                    specimen_type=workflow.get("dcc_specimen_type"),
                    submitted_donor_id=submitted_donor_id,
                    submitted_specimen_id=workflow.get("submitter_specimen_id"),
                    submitted_sample_id=workflow.get("submitter_sample_id"),
                )
            ],
            library_strategy=library_strategy,
            workflow_type=workflow_type,
            specimen_class=specimen_class,
            endpoints=[repos] if isinstance(repos, str) else list(repos),
            last_modified=parse_timestamp(workflow.get("gnos_last_modified")),
        )

    def _parse_hit(self, hit: dict[str, Any]) -> InventoryObject | None:
        name = hit.get("file_name")
        identity = hit.get("object_id") or hit.get("file_id")
        if not identity and name and hit.get("data_bundle_id"):
            identity = resolve_object_id(hit["data_bundle_id"], name)
        if not identity:
            logger.debug("catalog_hit_without_id", source=self.source.value, hit=hit)
            return None

        md5 = hit.get("file_md5sum") or hit.get("md5sum")
        return InventoryObject(
            identity=identity,
            key=name or identity,
            size=hit.get("file_size"),
            checksum=Checksum(digest=md5) if md5 else None,
            last_modified=parse_timestamp(
                hit.get("last_modified") or hit.get("updated_datetime")
            ),
            state=(hit.get("state") or "").lower() or None,
        )

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def _build_file(
        self,
        entry: ManifestEntry,
        descriptor: RawFileDescriptor,
        obj: InventoryObject,
    ) -> CanonicalFile:
        analysis = Analysis(
            library_strategy=entry.library_strategy,
            workflow_type=entry.workflow_type,
            specimen_class=entry.specimen_class,
        )
        categorization = analysis.data_categorization(descriptor.name)
        path = f"{entry.unit_id}/{descriptor.name}"

        return CanonicalFile(
            identity=descriptor.object_id,
            source_system=self.source,
            file_name=descriptor.name,
            donor_refs=entry.donor_refs,
            project_code=entry.project_code,
            object_locations=[self._locate(endpoint, path) for endpoint in entry.endpoints],
            # The catalog file listing is authoritative for what was stored.
            size=obj.size if obj.size is not None else descriptor.size,
            checksum=descriptor.checksum or obj.checksum,
            file_format=categorization.file_format or resolve_file_format(descriptor.name),
            data_bundle_id=entry.unit_id,
            data_category=categorization.data_category,
            experimental_strategy=categorization.experimental_strategy,
            analysis_workflow=categorization.analysis_workflow,
            analysis_category=analysis.category,
            last_modified=entry.last_modified or obj.last_modified,
        )

    def _locate(self, endpoint: str, path: str) -> ObjectLocation:
        server = find_server(self._config.servers, endpoint)
        if server is not None:
            return server.locate(path)
        # Unregistered mirror: keep the copy, keyed by host.
        return ObjectLocation(
            repository_code=urlparse(endpoint).hostname or endpoint,
            endpoint=endpoint,
            path=path,
            protocol=AccessProtocol.GNOS,
        )
