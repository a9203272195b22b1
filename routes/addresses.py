import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.config import Settings, get_settings
from core.db import get_db
from core.errors import bad_request, not_found
from models.address import Address
from schemas.address import AddressIn, AddressOut, MessageOut
from security.auth import get_current_identity
from security.jwt import Identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/addresses", tags=["addresses"])

REQUIRED_FIELDS_ERROR = "Address line 1, city, first name, and last name are required"


def _require_fields(data: AddressIn) -> None:
    if not data.address_line_1 or not data.city or not data.first_name or not data.last_name:
        raise bad_request(REQUIRED_FIELDS_ERROR)


def _address_values(data: AddressIn, cfg: Settings) -> dict:
    return {
        "first_name": data.first_name,
        "last_name": data.last_name,
        "address_line_1": data.address_line_1,
        "address_line_2": data.address_line_2 or "",
        "city": data.city,
        "state": data.state or "",
        "postal_code": data.postal_code or "",
        "country": data.country or cfg.DEFAULT_COUNTRY,
        "phone": data.phone or "",
        "is_default": bool(data.is_default),
    }


def _clear_defaults(db: Session, user_id, keep_id: Optional[int] = None) -> None:
    q = db.query(Address).filter(Address.user_id == user_id, Address.is_default.is_(True))
    if keep_id is not None:
        q = q.filter(Address.id != keep_id)
    q.update({Address.is_default: False}, synchronize_session=False)


@router.get("", response_model=List[AddressOut])
def list_addresses(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    logger.info("Fetching addresses for user %s", identity.id)
    addresses = (
        db.query(Address)
        .filter(Address.user_id == identity.id)
        .order_by(Address.is_default.desc(), Address.created_at.desc(), Address.id.desc())
        .all()
    )
    logger.info("Fetched %d addresses for user %s", len(addresses), identity.id)
    return addresses


@router.get("/default", response_model=AddressOut)
def get_default_address(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    address = (
        db.query(Address)
        .filter(Address.user_id == identity.id, Address.is_default.is_(True))
        .first()
    )
    if not address:
        raise not_found("No default address")
    return address


@router.post("", response_model=AddressOut, status_code=201)
def create_address(
    data: AddressIn,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
):
    _require_fields(data)
    logger.info("Creating address for user %s", identity.id)

    if data.is_default:
        _clear_defaults(db, identity.id)

    address = Address(user_id=identity.id, **_address_values(data, cfg))
    db.add(address)
    db.commit()

    created = db.get(Address, address.id, populate_existing=True)
    logger.info("Created address %s for user %s", created.id, identity.id)
    return created


@router.put("", response_model=AddressOut)
def update_address(
    data: AddressIn,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
):
    if not data.id:
        raise bad_request("Address ID is required")
    _require_fields(data)
    logger.info("Updating address %s for user %s", data.id, identity.id)

    existing = db.query(Address).filter(Address.id == data.id, Address.user_id == identity.id).one_or_none()
    if not existing:
        raise not_found("Address not found")

    if data.is_default:
        _clear_defaults(db, identity.id, keep_id=data.id)

    updated_rows = (
        db.query(Address)
        .filter(Address.id == data.id, Address.user_id == identity.id)
        .update(_address_values(data, cfg), synchronize_session=False)
    )
    if updated_rows == 0:
        db.rollback()
        raise not_found("Address not found or unauthorized")
    db.commit()

    address = (
        db.query(Address)
        .populate_existing()
        .filter(Address.id == data.id, Address.user_id == identity.id)
        .one()
    )
    logger.info("Updated address %s", address.id)
    return address


@router.delete("", response_model=MessageOut)
def delete_address(
    id: Optional[int] = Query(default=None),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    if not id:
        raise bad_request("Address ID is required")
    logger.info("Deleting address %s for user %s", id, identity.id)

    deleted = (
        db.query(Address)
        .filter(Address.id == id, Address.user_id == identity.id)
        .delete(synchronize_session=False)
    )
    if deleted == 0:
        db.rollback()
        raise not_found("Address not found or unauthorized")
    db.commit()
    logger.info("Deleted address %s", id)
    return {"message": "Address deleted successfully"}
