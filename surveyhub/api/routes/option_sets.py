from typing import List
from fastapi import APIRouter, Depends, HTTPException, status

from surveyhub.api.deps import get_helpers, not_found
from surveyhub.core.errors import EntityNotFoundError
from surveyhub.schemas.option_set import OptionSetCreate, OptionSetKind, OptionSetOut, OptionSetUpdate
from surveyhub.services.database_proxy import ValidatingHelpersProxy

router = APIRouter(prefix="/option-sets", tags=["option-sets"])

# URL kind -> helper name stem (get_<stem>s, add_<stem>, ...)
HELPER_STEMS = {
    OptionSetKind.RATING_SCALE: "rating_scale",
    OptionSetKind.RADIO: "radio_option_set",
    OptionSetKind.SELECT: "select_option_set",
    OptionSetKind.MULTI_SELECT: "multi_select_option_set",
}


def _helper(helpers: ValidatingHelpersProxy, action: str, kind: OptionSetKind):
    stem = HELPER_STEMS[kind]
    name = f"get_{stem}s" if action == "list" else f"{action}_{stem}"
    return getattr(helpers, name)


@router.get("/{kind}", response_model=List[OptionSetOut])
async def list_option_sets(kind: OptionSetKind, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    return await _helper(helpers, "list", kind)()


@router.post("/{kind}", response_model=OptionSetOut, status_code=status.HTTP_201_CREATED)
async def create_option_set(
    kind: OptionSetKind,
    body: OptionSetCreate,
    helpers: ValidatingHelpersProxy = Depends(get_helpers),
):
    return await _helper(helpers, "add", kind)(body)


@router.get("/{kind}/{set_id}", response_model=OptionSetOut)
async def get_option_set(kind: OptionSetKind, set_id: str, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    option_set = await _helper(helpers, "get", kind)(set_id)
    if option_set is None:
        raise HTTPException(status_code=404, detail="Option set not found")
    return option_set


@router.patch("/{kind}/{set_id}", response_model=OptionSetOut)
async def update_option_set(
    kind: OptionSetKind,
    set_id: str,
    body: OptionSetUpdate,
    helpers: ValidatingHelpersProxy = Depends(get_helpers),
):
    try:
        return await _helper(helpers, "update", kind)(set_id, body)
    except EntityNotFoundError as e:
        raise not_found(e)


@router.delete("/{kind}/{set_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_option_set(kind: OptionSetKind, set_id: str, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    try:
        await _helper(helpers, "delete", kind)(set_id)
    except EntityNotFoundError as e:
        raise not_found(e)
