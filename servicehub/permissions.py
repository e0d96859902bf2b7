"""
Ownership checks

Every "does this caller own this resource" question goes through
``check_ownership``. Services that want an exception use
``require_ownership``; a resource that exists but belongs to someone else is
reported as not found so ids cannot be probed.
"""
import enum
from collections import namedtuple

from servicehub.errors import NotFoundError
from servicehub.models import Milestone, Project, db
from servicehub.utils import require_uuid


class Ownership(enum.Enum):
    OWNED = 'owned'
    NOT_FOUND = 'not_found'
    FORBIDDEN = 'forbidden'


OwnershipResult = namedtuple('OwnershipResult', ['outcome', 'resource'])


def check_ownership(model, resource_id, user_id, owner_fields):
    """
    Look up ``model`` by id and compare ``user_id`` against the owner fields.

    ``owner_fields`` is an attribute name or a tuple of names; owning any of
    them is enough.
    """
    if isinstance(owner_fields, str):
        owner_fields = (owner_fields,)

    resource = db.session.get(model, resource_id)
    if resource is None:
        return OwnershipResult(Ownership.NOT_FOUND, None)
    if any(getattr(resource, field) == user_id for field in owner_fields):
        return OwnershipResult(Ownership.OWNED, resource)
    return OwnershipResult(Ownership.FORBIDDEN, resource)


def require_ownership(model, resource_id, user_id, owner_fields, label=None):
    label = label or model.__name__
    resource_id = require_uuid(resource_id, f"{label.lower()} id")
    result = check_ownership(model, resource_id, user_id, owner_fields)
    if result.outcome is not Ownership.OWNED:
        raise NotFoundError(f"{label} not found or you don't have permission")
    return result.resource


def require_project(project_id, user_id, side):
    """Project owned by the caller as 'customer', 'provider' or 'either'"""
    fields = {
        'customer': 'customer_id',
        'provider': 'provider_id',
        'either': ('customer_id', 'provider_id'),
    }[side]
    return require_ownership(Project, project_id, user_id, fields, label='Project')


def require_milestone(milestone_id, user_id, side):
    """Milestone whose project is owned by the caller"""
    milestone_id = require_uuid(milestone_id, 'milestone id')
    milestone = db.session.get(Milestone, milestone_id)
    if milestone is None:
        raise NotFoundError("Milestone not found or you don't have permission")
    require_project(milestone.project_id, user_id, side)
    return milestone
