"""
contentgraph/permissions.py -- Authorization collaborators.

The engines never decide who may do what; they ask an ``Authorizer``.
``AllowAll`` is the default.  ``PermissionAuthorizer`` grants template
operations by permission code and lets content nodes inherit the answer
of the entity that owns them.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Protocol

from contentgraph.models.base import Entity

TEMPLATE_CREATE = "TEMPLATE_CREATE"
TEMPLATE_EDIT = "TEMPLATE_EDIT"
TEMPLATE_DELETE = "TEMPLATE_DELETE"

PERMISSIONS = {
    TEMPLATE_CREATE: "Create a template",
    TEMPLATE_EDIT: "Edit a template",
    TEMPLATE_DELETE: "Delete a template",
}


class Authorizer(Protocol):
    def can_create(self, actor: Any, context: Entity | None) -> bool: ...

    def can_edit(self, actor: Any, context: Entity | None) -> bool: ...

    def can_delete(self, actor: Any, context: Entity | None) -> bool: ...

    def can_view(self, actor: Any, context: Entity | None) -> bool: ...


class AllowAll:
    """Authorizer that permits everything."""

    def can_create(self, actor, context=None) -> bool:
        return True

    def can_edit(self, actor, context=None) -> bool:
        return True

    def can_delete(self, actor, context=None) -> bool:
        return True

    def can_view(self, actor, context=None) -> bool:
        return True


class PermissionAuthorizer:
    """Grants by permission code.

    Parameters
    ----------
    grants : callable
        ``grants(actor) -> iterable of permission codes`` held by *actor*.
    template_type : str
        Type name whose operations are guarded by the ``TEMPLATE_*`` codes.
    owner_of : callable, optional
        ``owner_of(entity) -> Entity | None``.  Content nodes defer to the
        answer for their owner when one is known.
    default : bool
        Answer for entities that are neither templates nor owned by one.
    """

    def __init__(
        self,
        grants: Callable[[Any], Iterable[str]],
        template_type: str = "Template",
        owner_of: Callable[[Entity], Entity | None] | None = None,
        default: bool = True,
    ):
        self.grants = grants
        self.template_type = template_type
        self.owner_of = owner_of
        self.default = default

    def _check(self, actor: Any, context: Entity | None, code: str) -> bool:
        if context is not None and self.owner_of is not None and context.type_name != self.template_type:
            owner = self.owner_of(context)
            if owner is not None:
                return self._check(actor, owner, code)
        if context is None or context.type_name == self.template_type:
            return code in set(self.grants(actor) or ())
        return self.default

    def can_create(self, actor, context=None) -> bool:
        return self._check(actor, context, TEMPLATE_CREATE)

    def can_edit(self, actor, context=None) -> bool:
        return self._check(actor, context, TEMPLATE_EDIT)

    def can_delete(self, actor, context=None) -> bool:
        return self._check(actor, context, TEMPLATE_DELETE)

    def can_view(self, actor, context=None) -> bool:
        return True
