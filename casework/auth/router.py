from fastapi import APIRouter, Depends

from casework.auth import schemas, models
from casework.auth.capabilities import Action, can
from casework.auth.dependencies import get_current_active_user

router = APIRouter()


@router.get("/me", response_model=schemas.UserResponse)
async def read_current_actor(user: models.User = Depends(get_current_active_user)):
    """The authenticated actor and the capabilities its role grants."""
    response = schemas.UserResponse.model_validate(user)
    response.capabilities = [action.value for action in Action if can(user, action)]
    return response
