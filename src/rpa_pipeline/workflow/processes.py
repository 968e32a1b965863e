# ABOUTME: Catalogue of finishing processes and the selection rules for an estimation
# ABOUTME: Required processes plus content- and client-specific additions

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ProcessDefinition:
    name: str
    category: str
    is_required: bool = False
    display_order: int = 0


@dataclass
class ProcessSelection:
    required: list[ProcessDefinition] = field(default_factory=list)
    content_based: list[ProcessDefinition] = field(default_factory=list)
    optional: list[ProcessDefinition] = field(default_factory=list)

    @property
    def all(self) -> list[ProcessDefinition]:
        """Every selected process once, in display order."""
        seen: dict[str, ProcessDefinition] = {}
        for process in self.required + self.content_based + self.optional:
            seen.setdefault(process.name.lower(), process)
        return sorted(seen.values(), key=lambda p: p.display_order)


BASE_PROCESSES = (
    ProcessDefinition("Die Cutting", "Cutting", True, 1),
    ProcessDefinition("Creasing", "Cutting", True, 2),
    ProcessDefinition("Gluing", "Assembly", True, 3),
)

CATALOGUE = (
    ProcessDefinition("Die Cutting", "Cutting", False, 1),
    ProcessDefinition("Creasing", "Cutting", False, 2),
    ProcessDefinition("Perforation", "Cutting", False, 3),
    ProcessDefinition("Scoring", "Cutting", False, 4),
    ProcessDefinition("Gluing", "Assembly", False, 5),
    ProcessDefinition("Stitching", "Assembly", False, 6),
    ProcessDefinition("Folding", "Assembly", False, 7),
    ProcessDefinition("UV Coating", "Finishing", False, 8),
    ProcessDefinition("Lamination", "Finishing", False, 9),
    ProcessDefinition("Embossing", "Finishing", False, 10),
    ProcessDefinition("Foil Stamping", "Finishing", False, 11),
    ProcessDefinition("Window Patching", "Special", False, 12),
    ProcessDefinition("Handle Attachment", "Special", False, 13),
    ProcessDefinition("Magnetic Closure", "Special", False, 14),
    ProcessDefinition("Ribbon Attachment", "Special", False, 15),
)

CONTENT_PROCESSES: dict[str, tuple[ProcessDefinition, ...]] = {
    "reverse tuck in": (
        ProcessDefinition("Window Patching", "Special", False, 10),
        ProcessDefinition("UV Coating", "Finishing", False, 11),
    ),
    "straight tuck": (
        ProcessDefinition("Perforation", "Cutting", False, 10),
        ProcessDefinition("Folding", "Assembly", False, 11),
    ),
    "auto bottom": (
        ProcessDefinition("Stitching", "Assembly", True, 10),
        ProcessDefinition("Handle Attachment", "Special", False, 11),
    ),
    "pillow box": (
        ProcessDefinition("Ribbon Attachment", "Special", False, 10),
        ProcessDefinition("Embossing", "Finishing", False, 11),
    ),
}

CLIENT_PROCESSES: dict[str, tuple[ProcessDefinition, ...]] = {
    "akrati offset": (
        ProcessDefinition("UV Coating", "Finishing", False, 20),
        ProcessDefinition("Lamination", "Finishing", False, 21),
    ),
}


def select_processes(content: str, client: str = "") -> ProcessSelection:
    return ProcessSelection(
        required=list(BASE_PROCESSES),
        content_based=list(CONTENT_PROCESSES.get(content.strip().lower(), ())),
        optional=list(CLIENT_PROCESSES.get(client.strip().lower(), ())),
    )


def search_process(term: str) -> ProcessDefinition | None:
    """Exact name match first, then the first partial match."""
    needle = term.strip().lower()
    if not needle:
        return None
    for process in CATALOGUE:
        if process.name.lower() == needle:
            return process
    for process in CATALOGUE:
        if needle in process.name.lower():
            return process
    return None
