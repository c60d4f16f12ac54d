"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Centralize tenant validation logic for reuse across services and routes.
Every request is scoped to one organization, and cross-tenant access must
look exactly like a missing row.

SECURITY INVARIANTS:
1. Every authenticated request has g.org_id set
2. Ids from client input are loaded through get_scoped(), never by id alone
3. Every created row copies the org_id of the request
4. Cross-tenant lookups are logged at warning level

USAGE:
    from workshop.services.tenant_service import get_scoped

    material = get_scoped(Material, material_id, g.org_id, label="Material")
"""

from flask import current_app

from ..extensions import db
from ..validation import NotFoundError


class TenantAccessError(Exception):
    """Raised when the tenant context is missing."""
    pass


def get_scoped(model, entity_id: int, org_id: int, *, label: str | None = None, query=None):
    """
    Load one org-owned row by id.

    Raises NotFoundError both when the row does not exist and when it belongs
    to another organization. Pass `query` to reuse a prepared (e.g. locked)
    query instead of a plain lookup.
    """
    name = label or model.__name__
    if org_id is None:
        raise TenantAccessError("Tenant context not established")

    q = query if query is not None else db.session.query(model)
    row = q.filter(model.id == entity_id).first()

    if row is None:
        raise NotFoundError(f"{name} not found")

    if row.org_id != org_id:
        # Don't reveal it exists in another org
        current_app.logger.warning(
            "Cross-tenant lookup: %s %s belongs to org %s, requested by org %s",
            name, entity_id, row.org_id, org_id,
        )
        raise NotFoundError(f"{name} not found")

    return row


def scoped_query(model, org_id: int):
    """Base query for an org-owned model."""
    if org_id is None:
        raise TenantAccessError("Tenant context not established")
    return db.session.query(model).filter(model.org_id == org_id)
