"""Listing service - shop service catalogue CRUD and public search"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...cache import build_catalogue_key, cache, invalidate_service_catalogue
from ...models import ShopService
from ..shop.repository import ShopRepository
from .repository import ServiceRepository
from .schemas import ServiceCreate, ServiceUpdate, serialize_service

logger = logging.getLogger(__name__)

CATALOGUE_CACHE_TTL = 300


class ListingService:
    """Service layer for service listings"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ServiceRepository()

    def get_service_or_404(self, service_id: str) -> ShopService:
        service = self.repo.get(self.db, service_id)
        if not service:
            raise HTTPException(status_code=404, detail="Service not found")
        return service

    def _owned_service(self, service_id: str, shop_id: str) -> ShopService:
        service = self.get_service_or_404(service_id)
        if service.shop_id != shop_id:
            raise HTTPException(status_code=403, detail="You can only manage your own services")
        return service

    def create(self, shop_id: str, data: ServiceCreate) -> dict:
        shop = ShopRepository.get(self.db, shop_id)
        if not shop:
            raise HTTPException(status_code=404, detail="Shop not found")
        if not shop.verified or not shop.active or shop.suspended_at is not None:
            raise HTTPException(
                status_code=403, detail="Shop must be verified and active to list services"
            )

        service = ShopService(
            shop_id=shop_id,
            name=data.name.strip(),
            description=data.description,
            category=data.category,
            price_usd=data.priceUsd,
            duration_minutes=data.durationMinutes,
            image_url=data.imageUrl,
            tags=data.tags,
            active=True,
        )
        self.db.add(service)
        self.db.commit()
        self.db.refresh(service)
        invalidate_service_catalogue()

        logger.info(f"🛠️ Service created: {service.service_id} for shop {shop_id}")
        return serialize_service(service)

    def search(
        self,
        shop_id: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        """Public catalogue search, cached per filter combination"""
        cache_key = build_catalogue_key(
            shopId=shop_id,
            category=category,
            search=search,
            minPrice=min_price,
            maxPrice=max_price,
            page=page,
            limit=limit,
        )
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        rows, total = self.repo.search(
            self.db,
            shop_id=shop_id,
            category=category,
            search=search,
            min_price=min_price,
            max_price=max_price,
            limit=limit,
            offset=(page - 1) * limit,
        )
        result = {
            "items": [serialize_service(s) for s in rows],
            "pagination": {"page": page, "limit": limit, "total": total},
        }
        cache.set(cache_key, result, ttl=CATALOGUE_CACHE_TTL)
        return result

    def get(self, service_id: str) -> dict:
        return serialize_service(self.get_service_or_404(service_id))

    def list_for_shop(self, shop_id: str, include_inactive: bool = False) -> list[dict]:
        if not ShopRepository.get(self.db, shop_id):
            raise HTTPException(status_code=404, detail="Shop not found")
        rows = self.repo.list_for_shop(self.db, shop_id, include_inactive=include_inactive)
        return [serialize_service(s) for s in rows]

    def update(self, service_id: str, shop_id: str, data: ServiceUpdate) -> dict:
        service = self._owned_service(service_id, shop_id)

        field_map = {
            "name": "name",
            "description": "description",
            "category": "category",
            "priceUsd": "price_usd",
            "durationMinutes": "duration_minutes",
            "imageUrl": "image_url",
            "tags": "tags",
            "active": "active",
        }
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None and field in ("name", "priceUsd", "active"):
                continue
            setattr(service, field_map[field], value)

        self.db.commit()
        self.db.refresh(service)
        invalidate_service_catalogue()
        return serialize_service(service)

    def delete(self, service_id: str, shop_id: str) -> dict:
        """Soft delete: existing orders keep pointing at the listing"""
        service = self._owned_service(service_id, shop_id)
        service.active = False
        self.db.commit()
        invalidate_service_catalogue()
        logger.info(f"🗑️ Service deactivated: {service_id}")
        return {"serviceId": service_id, "active": False}
