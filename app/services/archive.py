"""Session archive: revealed simulations grouped by (language, conflict category)."""
from app.schemas.archive import Archive, ArchiveCategory
from app.schemas.simulation import ConflictCategory, SimulationRecord

DEFAULT_LANGUAGE = "English"
DEFAULT_CONFLICT_CATEGORY = ConflictCategory.SOCIAL.value


def category_key(record: SimulationRecord) -> tuple[str, str]:
    """Return the (language, conflict category) key, defaults substituted."""
    meta = record.reveal_metadata
    language = (meta.language if meta else "") or DEFAULT_LANGUAGE
    conflict = (meta.conflict_category if meta else "") or DEFAULT_CONFLICT_CATEGORY
    return language, conflict


def record_reveal(archive: Archive, record: SimulationRecord) -> Archive:
    """Return a new archive with record at the front of its category.

    Any earlier occurrence of the same id is removed first, and categories
    left empty by that removal are pruned.
    """
    if not record.is_revealed:
        raise ValueError(f"record {record.id} is not revealed")

    categories = []
    for category in archive.categories:
        kept = tuple(r for r in category.records if r.id != record.id)
        if not kept:
            continue
        if len(kept) != len(category.records):
            category = category.model_copy(update={"records": kept})
        categories.append(category)

    key = category_key(record)
    for idx, category in enumerate(categories):
        if category.key == key:
            categories[idx] = category.model_copy(
                update={"records": (record,) + category.records}
            )
            break
    else:
        language, conflict = key
        categories.append(
            ArchiveCategory(language=language, conflict_category=conflict, records=(record,))
        )
    return Archive(categories=tuple(categories))


def find_record(archive: Archive, record_id: str) -> SimulationRecord | None:
    for category in archive.categories:
        for record in category.records:
            if record.id == record_id:
                return record
    return None


class ArchiveStore:
    """Holds the current archive snapshot for one session."""

    def __init__(self, archive: Archive | None = None):
        self.snapshot = archive or Archive()

    def record_reveal(self, record: SimulationRecord) -> Archive:
        self.snapshot = record_reveal(self.snapshot, record)
        return self.snapshot

    def list_categories(self) -> tuple[ArchiveCategory, ...]:
        return self.snapshot.categories

    def find_record(self, record_id: str) -> SimulationRecord | None:
        return find_record(self.snapshot, record_id)

    def __len__(self) -> int:
        return sum(len(c.records) for c in self.snapshot.categories)
