import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.config import LoanPolicy
from app.database import atomic
from app.models.enums import ResourceStatus
from app.models.resource import Resource, ResourceCategory
from app.services.errors import InvalidTransition, NotFound
from app.services.loans import holding_loan, advance_queue
from app.services.queue_ledger import resource_queue

logger = logging.getLogger(__name__)

# Statuses an admin may set by hand; borrowed/reserved belong to the loan lifecycle
MANUAL_STATUSES = (ResourceStatus.AVAILABLE, ResourceStatus.MAINTENANCE, ResourceStatus.RETIRED)


def create_category(db: Session, **fields) -> ResourceCategory:
    with atomic(db):
        if db.query(ResourceCategory).filter(ResourceCategory.name == fields["name"]).first() is not None:
            raise InvalidTransition(f"Category '{fields['name']}' already exists")
        category = ResourceCategory(**fields)
        db.add(category)
        db.flush()
        logger.info(f"Category {category.category_id} '{category.name}' created")
    return category


def create_resource(db: Session, category_id: int, name: str, description: Optional[str] = None,
                    notes: Optional[str] = None) -> Resource:
    with atomic(db):
        if db.query(ResourceCategory).filter(ResourceCategory.category_id == category_id).first() is None:
            raise NotFound(f"Category {category_id} not found")
        resource = Resource(
            category_id=category_id,
            name=name.strip(),
            description=description,
            notes=notes,
            status=ResourceStatus.AVAILABLE.value,
        )
        db.add(resource)
        db.flush()
        logger.info(f"Resource {resource.resource_id} '{resource.name}' added to category {category_id}")
    return resource


def set_resource_status(db: Session, resource_id: int, new_status: ResourceStatus, policy: LoanPolicy,
                        notes: Optional[str] = None) -> Resource:
    """Manual maintenance/retire/restore. A resource held by a loan cannot be changed."""
    new_status = ResourceStatus(new_status)
    if new_status not in MANUAL_STATUSES:
        raise InvalidTransition(f"Status '{new_status.value}' is managed by the loan lifecycle")
    with atomic(db):
        resource = resource_queue.lock_target(db, resource_id)
        if holding_loan(db, resource_id) is not None:
            raise InvalidTransition(f"Resource {resource_id} is held by a loan")
        resource.status = new_status.value
        if notes is not None:
            resource.notes = notes
        db.flush()
        logger.info(f"Resource {resource_id} set to {new_status.value}")
        if new_status == ResourceStatus.AVAILABLE:
            advance_queue(db, resource, policy)
    return resource
