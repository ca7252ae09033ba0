"""
Category service for public event categories.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import CacheInvalidator, CacheKeyBuilder, CacheTTL, get_cache
from ..models import PublicEvent, PublicEventCategory
from ..models.category import CategoryStatus
from ..schemas.category import CategoryCreate, CategoryResponse, CategoryUpdate
from ..utils.exceptions import (
    CategoryNotFoundError,
    DuplicateResourceError,
    ResourceInUseError,
)
from ..utils.slugs import slugify, unique_slug

logger = logging.getLogger(__name__)


DEFAULT_CATEGORIES = [
    {"name": "Concert", "slug": "concert", "icon": "Music"},
    {"name": "Conference", "slug": "conference", "icon": "Users"},
    {"name": "Workshop", "slug": "workshop", "icon": "Wrench"},
    {"name": "Festival", "slug": "festival", "icon": "PartyPopper"},
    {"name": "Sports", "slug": "sports", "icon": "Trophy"},
    {"name": "Theater", "slug": "theater", "icon": "Theater"},
    {"name": "Comedy", "slug": "comedy", "icon": "Laugh"},
    {"name": "Networking", "slug": "networking", "icon": "Network"},
    {"name": "Charity", "slug": "charity", "icon": "Heart"},
    {"name": "Other", "slug": "other", "icon": "MoreHorizontal"},
]


class CategoryService:
    """Service class for category management operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.cache = get_cache()

    async def list_categories(
        self,
        status: Optional[CategoryStatus] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[PublicEventCategory], int]:
        """
        List categories ordered by sort order, then name.

        Args:
            status: Only return categories in this status
            search: Case-insensitive match on name or description
            page: Page number (1-based)
            limit: Page size

        Returns:
            Tuple of (categories, total count)
        """
        conditions = []
        if status is not None:
            conditions.append(PublicEventCategory.status == status)
        if search:
            term = f"%{search.strip()}%"
            conditions.append(or_(
                PublicEventCategory.name.ilike(term),
                PublicEventCategory.description.ilike(term)
            ))

        count_result = await self.db.execute(
            select(func.count(PublicEventCategory.id)).where(*conditions)
        )
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(PublicEventCategory)
            .where(*conditions)
            .order_by(PublicEventCategory.sort_order, PublicEventCategory.name)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_active(self) -> List[Dict[str, Any]]:
        """Active categories for public pickers, served from cache when possible."""
        cache_key = CacheKeyBuilder.active_categories()
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        result = await self.db.execute(
            select(PublicEventCategory)
            .where(PublicEventCategory.status == CategoryStatus.ACTIVE)
            .order_by(PublicEventCategory.sort_order, PublicEventCategory.name)
        )
        categories = [
            CategoryResponse.model_validate(category).model_dump(mode="json")
            for category in result.scalars().all()
        ]
        await self.cache.set(cache_key, categories, CacheTTL.CATEGORIES)
        return categories

    async def get_category(self, category_id: UUID) -> PublicEventCategory:
        category = await self.db.get(PublicEventCategory, category_id)
        if not category:
            raise CategoryNotFoundError(str(category_id))
        return category

    async def get_category_by_slug(self, slug: str) -> PublicEventCategory:
        result = await self.db.execute(
            select(PublicEventCategory).where(PublicEventCategory.slug == slug.lower())
        )
        category = result.scalar_one_or_none()
        if not category:
            raise CategoryNotFoundError(slug)
        return category

    async def create_category(self, data: CategoryCreate) -> PublicEventCategory:
        """
        Create a category with a unique slug derived from its name.

        Raises:
            DuplicateResourceError: If a category with the same name exists
        """
        name = data.name.strip()
        await self._ensure_name_free(name)

        sort_order = data.sort_order
        if sort_order is None:
            result = await self.db.execute(select(func.max(PublicEventCategory.sort_order)))
            current_max = result.scalar()
            sort_order = 0 if current_max is None else current_max + 1

        category = PublicEventCategory(
            name=name,
            slug=await unique_slug(slugify(name, fallback="category"), self._slug_taken),
            icon=data.icon,
            image=data.image,
            description=data.description,
            status=data.status,
            sort_order=sort_order,
        )
        self.db.add(category)
        await self.db.commit()
        await self.db.refresh(category)

        await CacheInvalidator.invalidate_category_caches()
        logger.info(f"Created category {category.slug}")
        return category

    async def update_category(self, category_id: UUID, data: CategoryUpdate) -> PublicEventCategory:
        """Update a category; renaming regenerates the slug."""
        category = await self.get_category(category_id)
        updates = data.model_dump(exclude_unset=True)

        new_name = updates.pop("name", None)
        if new_name is not None:
            new_name = new_name.strip()
        if new_name and new_name != category.name:
            await self._ensure_name_free(new_name, exclude_id=category.id)
            category.name = new_name
            category.slug = await unique_slug(
                slugify(new_name, fallback="category"),
                lambda slug: self._slug_taken(slug, exclude_id=category.id)
            )

        for field, value in updates.items():
            setattr(category, field, value)

        await self.db.commit()
        await self.db.refresh(category)

        await CacheInvalidator.invalidate_category_caches()
        return category

    async def delete_category(self, category_id: UUID) -> None:
        """
        Delete a category.

        Raises:
            ResourceInUseError: If events still reference the category
        """
        category = await self.get_category(category_id)

        result = await self.db.execute(
            select(func.count(PublicEvent.id)).where(PublicEvent.category_id == category.id)
        )
        event_count = result.scalar() or 0
        if event_count:
            raise ResourceInUseError(
                f"Cannot delete category: {event_count} events are using it",
                details={"event_count": event_count}
            )

        await self.db.delete(category)
        await self.db.commit()

        await CacheInvalidator.invalidate_category_caches()
        logger.info(f"Deleted category {category_id}")

    async def toggle_status(self, category_id: UUID) -> PublicEventCategory:
        category = await self.get_category(category_id)
        category.status = (
            CategoryStatus.INACTIVE if category.is_active else CategoryStatus.ACTIVE
        )
        await self.db.commit()
        await self.db.refresh(category)

        await CacheInvalidator.invalidate_category_caches()
        return category

    async def reorder(self, items: List[Dict[str, Any]]) -> List[PublicEventCategory]:
        """Apply ``[{id, sort_order}]`` in one transaction."""
        orders = {UUID(str(item["id"])): item["sort_order"] for item in items}

        result = await self.db.execute(
            select(PublicEventCategory).where(PublicEventCategory.id.in_(list(orders)))
        )
        categories = {category.id: category for category in result.scalars().all()}

        missing = set(orders) - set(categories)
        if missing:
            raise CategoryNotFoundError(str(next(iter(missing))))

        for category_id, sort_order in orders.items():
            categories[category_id].sort_order = sort_order

        await self.db.commit()
        await CacheInvalidator.invalidate_category_caches()
        return sorted(categories.values(), key=lambda c: (c.sort_order, c.name))

    async def category_stats(self) -> Dict[str, Any]:
        result = await self.db.execute(
            select(PublicEventCategory.status, func.count(PublicEventCategory.id))
            .group_by(PublicEventCategory.status)
        )
        counts = {status: count for status, count in result.all()}
        active = counts.get(CategoryStatus.ACTIVE, 0)
        inactive = counts.get(CategoryStatus.INACTIVE, 0)
        total = active + inactive
        return {
            "total": total,
            "active": active,
            "inactive": inactive,
            "needs_seed": total == 0,
        }

    async def seed_categories(self, reset: bool = False) -> Dict[str, Any]:
        """
        Insert the default categories.

        Args:
            reset: Delete all existing categories first

        Returns:
            ``{message, created}``
        """
        if reset:
            await self.db.execute(delete(PublicEventCategory))
            logger.warning("Category reset requested: existing categories removed")
        else:
            stats = await self.category_stats()
            if stats["total"] > 0:
                return {"message": "Categories already exist, skipping seed", "created": 0}

        for index, default in enumerate(DEFAULT_CATEGORIES):
            self.db.add(PublicEventCategory(
                name=default["name"],
                slug=default["slug"],
                icon=default["icon"],
                status=CategoryStatus.ACTIVE,
                sort_order=index,
            ))

        await self.db.commit()
        await CacheInvalidator.invalidate_category_caches()
        logger.info(f"Seeded {len(DEFAULT_CATEGORIES)} categories")
        return {
            "message": f"Created {len(DEFAULT_CATEGORIES)} categories",
            "created": len(DEFAULT_CATEGORIES),
        }

    async def resolve(self, reference: str) -> PublicEventCategory:
        """Find a category by UUID or slug (event forms send either)."""
        try:
            return await self.get_category(UUID(str(reference)))
        except ValueError:
            return await self.get_category_by_slug(str(reference))

    async def _ensure_name_free(self, name: str, exclude_id: Optional[UUID] = None) -> None:
        query = select(PublicEventCategory.id).where(
            func.lower(PublicEventCategory.name) == name.lower()
        )
        if exclude_id is not None:
            query = query.where(PublicEventCategory.id != exclude_id)
        result = await self.db.execute(query)
        if result.first() is not None:
            raise DuplicateResourceError("A category with this name already exists", field="name")

    async def _slug_taken(self, slug: str, exclude_id: Optional[UUID] = None) -> bool:
        query = select(PublicEventCategory.id).where(PublicEventCategory.slug == slug)
        if exclude_id is not None:
            query = query.where(PublicEventCategory.id != exclude_id)
        result = await self.db.execute(query)
        return result.first() is not None
