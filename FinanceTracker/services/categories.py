"""Custom categories on top of the built-in category lists."""
import logging
from typing import Any, List

from .base import EntityService
from ..core.models import (
    CustomCategory,
    DEFAULT_CATEGORIES,
    EntityType,
    TransactionType,
)
from ..status import status


class CategoryService(EntityService):
    """User-defined categories. Built-in categories are neither stored nor deletable."""
    entity_type = EntityType.CustomCategories

    def list(self) -> List[CustomCategory]:
        return self.records()

    def is_default(self, transaction_type: Any, name: str) -> bool:
        defaults = DEFAULT_CATEGORIES[TransactionType(transaction_type)]
        return str(name).strip().lower() in (d.lower() for d in defaults)

    def get_categories(self, transaction_type: Any) -> List[str]:
        """Return the category names of a type: built-in ones first, then custom ones."""
        transaction_type = TransactionType(transaction_type)
        customs = [c.name for c in self.records() if c.type == transaction_type]
        return list(DEFAULT_CATEGORIES[transaction_type]) + customs

    async def add_custom_category(self, transaction_type: Any, name: str) -> CustomCategory:
        """Create a custom category.

        Raises:
            status.ValidationException: If the name is empty or the category already exists.
        """
        try:
            transaction_type = TransactionType(transaction_type)
        except ValueError as ex:
            raise status.ValidationException(f'Unknown category type "{transaction_type}".') from ex

        name = str(name or '').strip()
        if not name:
            raise status.ValidationException('Category name is empty.')
        existing = [n.lower() for n in self.get_categories(transaction_type)]
        if name.lower() in existing:
            raise status.ValidationException(f'Category "{name}" already exists.')

        category = CustomCategory(id=self.id_factory.new(), name=name, type=transaction_type)
        category = await self._create(category)
        logging.info(f'Added {transaction_type.value} category "{name}".')
        return category

    async def delete_custom_category(self, category_id: Any) -> CustomCategory:
        """Delete a custom category.

        Raises:
            status.RecordNotFoundException: If no custom category has this id.
        """
        return await self._delete(category_id)

    async def delete_category_by_name(self, transaction_type: Any, name: str) -> CustomCategory:
        """Delete a custom category by its name.

        Raises:
            status.ValidationException: If the name belongs to a built-in category.
            status.RecordNotFoundException: If no custom category has this name.
        """
        transaction_type = TransactionType(transaction_type)
        if self.is_default(transaction_type, name):
            raise status.ValidationException(f'"{name}" is a built-in category and cannot be deleted.')
        for category in self.records():
            if category.type == transaction_type and category.name.lower() == str(name).strip().lower():
                return await self._delete(category.id)
        raise status.RecordNotFoundException(f'Custom category "{name}" does not exist.')

    async def reset_custom_categories(self) -> None:
        """Delete every custom category."""
        for category in self.records():
            await self._delete(category.id)
        logging.info('Custom categories reset.')
