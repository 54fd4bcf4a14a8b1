"""Repositories for aggregate orders and their fulfillment units."""

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.repositories.interfaces import IOrderRepository

__all__ = ["IOrderRepository", "OrderDjangoRepository"]
