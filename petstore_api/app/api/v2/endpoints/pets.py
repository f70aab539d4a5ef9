"""
Pet endpoints for API v2.

Create, replace, delete and look up pets, and search them by status or
tag.  Search parameters accept comma-separated values
(``?status=available,sold``), repeated parameters, or a mix of both.
Matches for several values are concatenated in the order the values
were given.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException, Query, status

from petstore_api.app.api.v2.errors import store_errors
from petstore_api.app.schemas.pet import Pet
from petstore_api.app.services.pet_service import PetService

router = APIRouter()


def split_values(raw: List[str]) -> List[str]:
    """Flatten ``["a,b", "c"]`` into ``["a", "b", "c"]``, dropping blanks."""
    values = []
    for item in raw:
        values.extend(part.strip() for part in item.split(",") if part.strip())
    return values


@router.post("", response_model=Pet, response_model_exclude_none=True, status_code=status.HTTP_201_CREATED)
async def add_pet(pet: Pet) -> Dict[str, Any]:
    """Добавить питомца.

    Требуются поля ``id`` и ``status``; у каждого тега должно быть
    поле ``name``.  Питомец с тем же ``id`` будет заменён.
    """
    with store_errors():
        return await PetService.create_pet(pet)


@router.put("", response_model=Pet, response_model_exclude_none=True)
async def update_pet(pet: Pet) -> Dict[str, Any]:
    """Replace an existing pet identified by the body's ``id``."""
    with store_errors():
        updated = await PetService.update_pet(pet)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pet not found")
    return updated


@router.get("", response_model=List[Pet], response_model_exclude_none=True)
async def list_pets() -> List[Dict[str, Any]]:
    """Return every pet in the store."""
    with store_errors():
        return await PetService.list_pets()


@router.get("/findByStatus", response_model=List[Pet], response_model_exclude_none=True)
async def find_pets_by_status(
    status_values: List[str] = Query([], alias="status"),
) -> List[Dict[str, Any]]:
    """Найти питомцев по статусу (например ``available,sold``)."""
    with store_errors():
        return await PetService.find_by_status(split_values(status_values))


@router.get("/findByTags", response_model=List[Pet], response_model_exclude_none=True)
async def find_pets_by_tags(tags: List[str] = Query([])) -> List[Dict[str, Any]]:
    """Найти питомцев по тегам (например ``dog,cat``)."""
    with store_errors():
        return await PetService.find_by_tags(split_values(tags))


@router.get("/{pet_id}", response_model=Pet, response_model_exclude_none=True)
async def get_pet(pet_id: str) -> Dict[str, Any]:
    """Retrieve a single pet.  Returns HTTP 404 if it does not exist."""
    with store_errors():
        pet = await PetService.get_pet(pet_id)
    if pet is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pet not found")
    return pet


@router.delete("/{pet_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pet(pet_id: str) -> None:
    """Delete a pet together with its index entries."""
    with store_errors():
        deleted = await PetService.delete_pet(pet_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pet not found")
    return None
