from __future__ import annotations

from ..errors import AddonNotFound, ValidationError
from ..extensions import db
from ..models import Addon
from ..validation import require_non_negative_int
from .concurrency import lock_for_update, run_with_retry


def create_addon(name: str, price_cents: int) -> Addon:
    if not name or not name.strip():
        raise ValidationError("name is required")
    require_non_negative_int(price_cents, "price_cents")

    def _op():
        addon = Addon(name=name.strip(), price_cents=price_cents, is_active=True)
        db.session.add(addon)
        db.session.commit()
        return addon

    return run_with_retry(_op)


def get_addon(addon_id: int) -> Addon:
    addon = db.session.get(Addon, addon_id)
    if addon is None:
        raise AddonNotFound(addon_id)
    return addon


def list_addons(is_active: bool | None = None) -> list[Addon]:
    q = db.session.query(Addon)
    if is_active is not None:
        q = q.filter(Addon.is_active.is_(is_active))
    return q.order_by(Addon.name.asc(), Addon.id.asc()).all()


def update_addon(addon_id: int, name: str | None = None, price_cents: int | None = None) -> Addon:
    """
    Rename or reprice. Past sales are unaffected: TransactionItemAddon rows
    carry the price snapshotted at sale time.
    """
    if name is not None and not name.strip():
        raise ValidationError("name cannot be blank")
    if price_cents is not None:
        require_non_negative_int(price_cents, "price_cents")

    def _op():
        addon = lock_for_update(db.session.query(Addon).filter_by(id=addon_id)).first()
        if not addon:
            raise AddonNotFound(addon_id)
        if name is not None:
            addon.name = name.strip()
        if price_cents is not None:
            addon.price_cents = price_cents
        db.session.commit()
        return addon

    return run_with_retry(_op)


def deactivate_addon(addon_id: int) -> bool:
    """Soft delete. Returns False when the addon was already inactive."""
    def _op():
        addon = lock_for_update(db.session.query(Addon).filter_by(id=addon_id)).first()
        if not addon:
            raise AddonNotFound(addon_id)
        if not addon.is_active:
            db.session.rollback()
            return False
        addon.is_active = False
        db.session.commit()
        return True

    return run_with_retry(_op)
