"""Abstract base class for per-repository source adapters.

Every external repository is reduced to the same three-stage contract,
invoked by the import orchestrator in fixed order:

1. :meth:`SourceAdapter.read_manifest` -- what the source *claims* exists.
2. :meth:`SourceAdapter.read_inventory` -- what is *physically* present,
   enumerated independently of the manifest.
3. :meth:`SourceAdapter.process` -- joins the two by identity and lazily
   yields :class:`~filerepo.models.files.CanonicalFile` records, plus an
   :class:`~filerepo.models.manifest.IntegrityWarning` for every manifest
   descriptor that has no physical counterpart.

``process`` is pure: it performs no I/O and reads no clock, so the same
inputs always yield the same records.  The base class owns the join and
the pairing of companion index files (``x.bam`` + ``x.bam.bai``);
subclasses only map one joined ``(entry, descriptor, object)`` triple to a
canonical record in :meth:`SourceAdapter._build_file`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, Iterator, Mapping

from filerepo.models.files import (
    INDEX_FILE_FORMATS,
    CanonicalFile,
    IndexFile,
    SourceSystem,
)
from filerepo.models.manifest import (
    IntegrityWarning,
    InventoryObject,
    ManifestEntry,
    RawFileDescriptor,
)

# Catalog lifecycle states that mean the source removed the file.
TOMBSTONE_STATES = frozenset({"redacted", "deleted"})

ProcessOutput = CanonicalFile | IntegrityWarning


# Concrete implementations: TransferJobAdapter, AnalysisCatalogAdapter
# (filerepo/adapters/)
class SourceAdapter(ABC):
    """Contract and shared join logic for one external repository.

    Parameters
    ----------
    source:
        The source tag stamped on every record this adapter produces.
    """

    def __init__(self, source: SourceSystem) -> None:
        self._source = source

    @property
    def source(self) -> SourceSystem:
        return self._source

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @abstractmethod
    def read_manifest(self) -> AsyncIterator[ManifestEntry]:
        """Stream the source's manifest entries.

        Finite and not restartable mid-stream.

        Raises
        ------
        filerepo.utils.errors.SourceUnavailableError
            If the manifest cannot be fetched or parsed.
        """

    @abstractmethod
    def read_inventory(self) -> AsyncIterator[InventoryObject]:
        """Stream the physically present objects, page by page.

        Raises
        ------
        filerepo.utils.errors.SourceUnavailableError
            If the listing cannot be fetched.
        """

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process(
        self,
        manifest: Iterable[ManifestEntry],
        inventory: Mapping[str, InventoryObject] | Iterable[InventoryObject],
    ) -> Iterator[ProcessOutput]:
        """Join *manifest* to *inventory* and yield canonical records lazily.

        Parameters
        ----------
        manifest:
            Materialized manifest entries.
        inventory:
            Inventory objects, either keyed by identity or as a plain
            iterable (indexed here).

        Yields
        ------
        CanonicalFile | IntegrityWarning
            One record per joined primary file, one warning per manifest
            descriptor missing from the inventory.
        """
        if isinstance(inventory, Mapping):
            objects: Mapping[str, InventoryObject] = inventory
        else:
            objects = {obj.identity: obj for obj in inventory}

        for entry in manifest:
            yield from self._process_entry(entry, objects)

    def _process_entry(
        self,
        entry: ManifestEntry,
        objects: Mapping[str, InventoryObject],
    ) -> Iterator[ProcessOutput]:
        index_files = pair_index_files(entry.files)
        paired = {d.object_id for d in index_files.values()}

        for descriptor, obj in self._join(entry, objects):
            if descriptor.object_id in paired:
                # Attached to its primary file below, never a record of its own.
                if obj is None:
                    yield self._missing(entry, descriptor)
                continue

            if obj is None:
                yield self._missing(entry, descriptor)
                continue

            if _size_mismatch(descriptor, obj):
                yield IntegrityWarning(
                    source=self._source.value,
                    identity=descriptor.object_id,
                    unit_id=entry.unit_id,
                    message=(
                        f"Size mismatch for {descriptor.name}: manifest={descriptor.size} "
                        f"inventory={obj.size}"
                    ),
                )

            record = self._build_file(entry, descriptor, obj)
            if record is None:
                continue

            updates: dict[str, object] = {}
            index_descriptor = index_files.get(descriptor.object_id)
            if index_descriptor is not None and index_descriptor.object_id in objects:
                updates["index_file"] = self._build_index_file(
                    index_descriptor, objects[index_descriptor.object_id]
                )
            if obj.state in TOMBSTONE_STATES:
                updates["tombstone"] = True
            yield record.model_copy(update=updates) if updates else record

    def _join(
        self,
        entry: ManifestEntry,
        objects: Mapping[str, InventoryObject],
    ) -> Iterator[tuple[RawFileDescriptor, InventoryObject | None]]:
        """Pair each descriptor of *entry* with its inventory object, if any."""
        for descriptor in entry.files:
            yield descriptor, objects.get(descriptor.object_id)

    def _missing(self, entry: ManifestEntry, descriptor: RawFileDescriptor) -> IntegrityWarning:
        return IntegrityWarning(
            source=self._source.value,
            identity=descriptor.object_id,
            unit_id=entry.unit_id,
            message=f"Manifest file {descriptor.name} not found in inventory",
        )

    def _build_index_file(self, descriptor: RawFileDescriptor, obj: InventoryObject) -> IndexFile:
        suffix = descriptor.name[descriptor.name.rfind(".") :].lower()
        return IndexFile(
            identity=descriptor.object_id,
            file_name=descriptor.name,
            file_format=INDEX_FILE_FORMATS.get(suffix),
            size=descriptor.size if descriptor.size is not None else obj.size,
            checksum=descriptor.checksum or obj.checksum,
        )

    @abstractmethod
    def _build_file(
        self,
        entry: ManifestEntry,
        descriptor: RawFileDescriptor,
        obj: InventoryObject,
    ) -> CanonicalFile | None:
        """Map one joined triple to a canonical record.

        Return ``None`` to drop the file (e.g. unsupported type).
        """

    def get_provider_name(self) -> str:
        return self._source.value


def pair_index_files(descriptors: Iterable[RawFileDescriptor]) -> dict[str, RawFileDescriptor]:
    """Map primary-file object ids to their companion index descriptors.

    A descriptor named ``<name>.bai`` or ``<name>.tbi`` is the index of the
    descriptor named ``<name>`` in the same manifest entry.  Index files
    without a primary are left unpaired and processed as ordinary files.
    """
    by_name = {d.name: d for d in descriptors}
    pairs: dict[str, RawFileDescriptor] = {}
    for name, descriptor in by_name.items():
        for suffix in INDEX_FILE_FORMATS:
            if name.lower().endswith(suffix):
                primary = by_name.get(name[: -len(suffix)])
                if primary is not None:
                    pairs[primary.object_id] = descriptor
                break
    return pairs


def _size_mismatch(descriptor: RawFileDescriptor, obj: InventoryObject) -> bool:
    return (
        descriptor.size is not None
        and obj.size is not None
        and descriptor.size != obj.size
    )


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp as sources report it; ``None`` when unparseable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
