# library_api/api/v1/endpoints/equipment.py
from typing import List

from fastapi import APIRouter, Body, Path, status
from loguru import logger

from library_api.core.errors import NotFoundError, ValidationError
from library_api.core.utils import generate_unique_code, parse_object_id, utc_now
from library_api.models.equipment import Equipment

router = APIRouter(tags=["Equipment"])


async def get_equipment_or_404(equipment_id: str) -> Equipment:
    equipment = await Equipment.get(parse_object_id(equipment_id, "equipment ID"))
    if not equipment:
        raise NotFoundError("Equipment not found")
    return equipment


def validate_equipment_response(doc: Equipment) -> Equipment.Response:
    data = doc.model_dump(exclude={"id", "revision_id"})
    return Equipment.Response.model_validate({**data, "id": str(doc.id)})


@router.get("/", response_model=List[Equipment.Response])
async def read_equipment_list():
    docs = await Equipment.find_all().sort(+Equipment.code).to_list()
    return [validate_equipment_response(doc) for doc in docs]


@router.get("/{equipment_id}", response_model=Equipment.Response)
async def read_equipment(equipment_id: str = Path(...)):
    return validate_equipment_response(await get_equipment_or_404(equipment_id))


@router.post("/", response_model=Equipment.Response, status_code=status.HTTP_201_CREATED)
async def create_equipment(equipment_in: Equipment.Create = Body(...)):
    code = equipment_in.code or await generate_unique_code(Equipment, "EQ")
    if equipment_in.code and await Equipment.find_one(Equipment.code == code):
        raise ValidationError(f"Equipment code '{code}' already exists.")

    equipment = Equipment(**equipment_in.model_dump(exclude={"code"}), code=code)
    await equipment.insert()
    logger.info(f"Equipment {equipment.code} created.")
    return validate_equipment_response(equipment)


@router.put("/{equipment_id}", response_model=Equipment.Response)
async def update_equipment(equipment_id: str = Path(...), equipment_in: Equipment.Update = Body(...)):
    equipment = await get_equipment_or_404(equipment_id)
    update_data = equipment_in.model_dump(exclude_unset=True, exclude_none=True)
    if not update_data:
        raise ValidationError("No update data provided.")

    update_data["updated_at"] = utc_now()
    await equipment.update({"$set": update_data})
    logger.info(f"Equipment {equipment.code} updated. Fields: {list(update_data)}")
    return validate_equipment_response(await get_equipment_or_404(equipment_id))


@router.delete("/{equipment_id}")
async def delete_equipment(equipment_id: str = Path(...)):
    equipment = await get_equipment_or_404(equipment_id)
    await equipment.delete()
    logger.info(f"Equipment {equipment.code} deleted.")
    return {"message": "Equipment deleted"}
