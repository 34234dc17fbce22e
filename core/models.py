# =============================================================================
# core/models.py  —  Data Models (the "nouns" of the system)
# =============================================================================
#
# These dataclasses define the shape of every piece of information that
# flows from the Drupal repository to the MCP client.  They are frozen:
# a lookup builds them once and nobody mutates them afterwards.
#
# THE LOOKUP OUTCOME:
#   Every lookup ends in exactly one of three variants:
#     Found(item)                         → the record, fully dereferenced
#     NotFound()                          → valid query, no matching record
#     RequestFailed(status_code, details) → Drupal said no, or timed out
#   None of them is an exception.  The tool layer turns each variant into
#   structured content plus a one-line summary.
#
# FIELD NAMES:
#   The serialised record keeps the Italian field names the Drupal content
#   type uses (numero_inventario, tipologia, ...), since that is what the
#   clients of this server already consume.
# =============================================================================

from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Union

# A relationship resolves to nothing, one display name, or several.
RelationshipValue = Union[None, str, list[str]]


# -----------------------------------------------------------------------------
# InventoryQuery — what we ask Drupal for
# -----------------------------------------------------------------------------
# The include paths are the entity-reference fields of the "opera" content
# type.  Drupal side-loads the referenced entities into the top-level
# "included" array so the record can be flattened without follow-up calls.
# -----------------------------------------------------------------------------
INCLUDE_PATHS: tuple[str, ...] = (
    "field_autore",        # author
    "field_tipologia",     # type
    "field_luogo",         # place
    "field_tecnica",       # technique
    "field_materiale",     # material
    "field_schedatore",    # cataloguer
)


@dataclass(frozen=True)
class InventoryQuery:
    """A single lookup by inventory number."""

    identifier: str
    include_paths: tuple[str, ...] = INCLUDE_PATHS

    def __post_init__(self):
        if not isinstance(self.identifier, str) or not self.identifier:
            raise ValueError("inventory identifier must be a non-empty string")


@dataclass(frozen=True)
class Dimensions:
    """Physical measurements, each optional (Drupal stores them as decimals)."""

    altezza: Optional[float] = None     # height
    larghezza: Optional[float] = None   # width
    diametro: Optional[float] = None    # diameter
    spessore: Optional[float] = None    # thickness


@dataclass(frozen=True)
class Description:
    """The description field, as plain text and as the original markup."""

    text: str = ""
    html: str = ""


# -----------------------------------------------------------------------------
# ResolvedItem — the flat record returned to the client
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ResolvedItem:
    """One "opera" node with its relationships dereferenced to names."""

    id: Optional[str]
    type: Optional[str]
    title: Optional[str] = None
    numero_inventario: Optional[str] = None
    periodo: Optional[str] = None
    data_label: Optional[str] = None
    data_da: Any = None                # field_data_0, kept as Drupal sends it
    data_a: Any = None                 # field_data_1
    acquisizione: Optional[str] = None
    dimensioni: Dimensions = field(default_factory=Dimensions)

    # --- Relationships (author, type, place, technique, material, cataloguer)
    autore: RelationshipValue = None
    tipologia: RelationshipValue = None
    luogo: RelationshipValue = None
    tecnica: RelationshipValue = None
    materiale: RelationshipValue = None
    schedatore: RelationshipValue = None

    descrizione: Description = field(default_factory=Description)
    links: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# -----------------------------------------------------------------------------
# LookupOutcome variants
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class Found:
    item: ResolvedItem

    def to_dict(self) -> dict[str, Any]:
        return {"found": True, **self.item.to_dict()}


@dataclass(frozen=True)
class NotFound:
    def to_dict(self) -> dict[str, Any]:
        return {"found": False, "error": None}


@dataclass(frozen=True)
class RequestFailed:
    """Drupal answered with a non-2xx status, or never answered at all.

    ``status_code`` is None when there was no HTTP response (timeout,
    connection refused, ...).  ``details`` is Drupal's JSON:API ``errors``
    list when it sent one, otherwise the start of the raw body.
    """

    status_code: Optional[int]
    details: Any = None
    reason: Optional[str] = None       # set for transport-level failures

    @property
    def error(self) -> str:
        if self.status_code is None:
            return f"Drupal request failed ({self.reason or 'no response'})"
        return f"Drupal request failed ({self.status_code})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "found": False,
            "error": self.error,
            "status": self.status_code,
            "details": self.details,
        }


LookupOutcome = Union[Found, NotFound, RequestFailed]
