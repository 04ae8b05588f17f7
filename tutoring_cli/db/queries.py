from typing import Any, Type, TypeVar

from sqlalchemy.orm import Session

from tutoring_cli.errors import NotFound

T = TypeVar("T")


def get_or_raise(db: Session, model: Type[T], entity_id: Any) -> T:
    """Load a row by primary key or raise ``NotFound`` naming the model."""
    instance = db.get(model, entity_id)
    if instance is None:
        raise NotFound(model.__name__, entity_id)
    return instance
