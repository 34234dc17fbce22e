# =============================================================================
# core/relationships.py  —  Dereference JSON:API relationships to names
# =============================================================================
#
# A JSON:API resource points at related entities with {type, id} pairs:
#
#   "relationships": {
#     "field_tecnica": {"data": {"type": "taxonomy_term--tecnica", "id": "X"}},
#     "field_autore":  {"data": [{"type": "node--autore", "id": "A"}, ...]}
#   }
#
# When the request asked for ?include=field_tecnica,..., the referenced
# entities are side-loaded in the document's top-level "included" list.
# This module looks them up there and returns their display names:
#   - taxonomy terms carry attributes.name
#   - nodes carry attributes.title
#
# Pure lookup: no network, no mutation of the document.
# =============================================================================

from typing import Any, Mapping, Optional

from core.models import RelationshipValue


def _display_name(resource: Mapping[str, Any]) -> Optional[str]:
    attributes = resource.get("attributes")
    if not isinstance(attributes, Mapping):
        return None
    return attributes.get("name") or attributes.get("title") or None


def _find_included(included: list, ref: Any) -> Optional[Mapping[str, Any]]:
    if not isinstance(ref, Mapping):
        return None
    for resource in included:
        if (
            isinstance(resource, Mapping)
            and resource.get("type") == ref.get("type")
            and resource.get("id") == ref.get("id")
        ):
            return resource
    return None


def _resolve_one(included: list, ref: Any) -> Optional[str]:
    resource = _find_included(included, ref)
    if resource is None:
        return None
    return _display_name(resource)


def resolve_included_names(document: Any, relationship_data: Any) -> RelationshipValue:
    """Resolve a relationship's ``data`` member against ``document["included"]``.

    Args:
        document: The whole JSON:API response document.
        relationship_data: ``relationships.<field>.data`` of the primary
            resource: a {type, id} dict, a list of them, or None.

    Returns:
        None when nothing is side-loaded or there is no reference; a list
        of names (unresolvable entries dropped, order kept) for a list
        reference; a single name or None for a single reference.
    """
    included = document.get("included") if isinstance(document, Mapping) else None
    if not included or not isinstance(included, list) or relationship_data is None:
        return None

    if isinstance(relationship_data, list):
        names = (_resolve_one(included, ref) for ref in relationship_data)
        return [name for name in names if name]

    return _resolve_one(included, relationship_data)


def relationship_data(resource: Mapping[str, Any], field_name: str) -> Any:
    """Return ``resource.relationships.<field_name>.data``, or None."""
    relationships = resource.get("relationships")
    if not isinstance(relationships, Mapping):
        return None
    rel = relationships.get(field_name)
    if not isinstance(rel, Mapping):
        return None
    return rel.get("data")
