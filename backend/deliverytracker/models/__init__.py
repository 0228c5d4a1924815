"""ORM model exports for convenient imports elsewhere in the app."""

from deliverytracker.models.base import Base
from deliverytracker.models.customer import Customer
from deliverytracker.models.delivery import Delivery

__all__ = ["Base", "Customer", "Delivery"]
