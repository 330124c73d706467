import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..auth import get_current_admin
from ..database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/product-colours", tags=["Product Colours"])


@router.get("", response_model=List[schemas.ColourOut])
def list_colours(db: Session = Depends(get_db)):
    return crud.get_colours(db)


@router.post("", response_model=schemas.ColourOut)
def create_colour(
    body: schemas.ColourCreate,
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    if not body.name or not body.image_url:
        raise HTTPException(status_code=400, detail="Missing required fields: name, image_url")
    colour = crud.create_colour(db, name=body.name, image_url=body.image_url, sort_order=body.sort_order)
    logger.info("colour %s created by %s", colour.id, current_admin["username"])
    return colour


@router.put("", response_model=schemas.ColourOut)
def update_colour(
    body: schemas.ColourUpdate,
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    if body.id is None:
        raise HTTPException(status_code=400, detail="Missing required field: id")

    update_data = {"name": body.name, "sort_order": body.sort_order}
    # an empty image url keeps the current image
    if body.image_url:
        update_data["image_url"] = body.image_url

    colour = crud.update_colour(db, body.id, update_data)
    if not colour:
        raise HTTPException(status_code=404, detail="Colour not found")
    return colour


@router.delete("")
def delete_colour(
    body: schemas.ColourDelete,
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    if body.id is None:
        raise HTTPException(status_code=400, detail="Missing required field: id")
    if not crud.delete_colour(db, body.id):
        raise HTTPException(status_code=404, detail="Colour not found")
    return {"id": body.id}
